from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
for path in (REPO_ROOT, REPO_ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

import builders  # noqa: E402
from dse.registry import Registry  # noqa: E402


@pytest.fixture(scope="session")
def registry() -> Registry:
    return Registry.bundled()


@pytest.fixture
def minimal_swdl() -> bytes:
    return builders.minimal_swdl()


@pytest.fixture
def sample_bank() -> bytes:
    return builders.sample_bank()


@pytest.fixture
def simple_smdl() -> bytes:
    return builders.simple_smdl()
