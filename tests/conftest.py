from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the repo root importable when pytest runs from any CWD.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from zome_frame.parameters import StructureParams, ZomeParameters  # noqa: E402
from zome_frame.topology import clear_topology_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_topology_cache():
    clear_topology_cache()
    yield
    clear_topology_cache()


@pytest.fixture
def s1_params() -> ZomeParameters:
    return ZomeParameters(n=11, dmax=10.0, a_deg=39.8, cut_active=False)


@pytest.fixture
def s2_params() -> ZomeParameters:
    return ZomeParameters(n=11, dmax=10.0, a_deg=39.8, cut_active=True, cut_level=3)


@pytest.fixture
def s3_params() -> ZomeParameters:
    structure = StructureParams(cyl_diameter_mm=100.0, beam_width_mm=20.0, beam_height_mm=40.0)
    return ZomeParameters(n=6, dmax=2.0, a_deg=45.0, cut_active=False, structure=structure)


@pytest.fixture
def s4_params() -> ZomeParameters:
    return ZomeParameters(n=8, dmax=4.0, a_deg=30.0, cut_active=False)
