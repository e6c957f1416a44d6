import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from blobsim.config import SimulationConfig  # noqa: E402
from blobsim.rng import SimulationRng  # noqa: E402
from blobsim.sim.core.world import World  # noqa: E402


class ConstantRng(SimulationRng):
    """Seeded stream whose ``next_float`` (and so every ``chance``) always returns ``value``."""

    def __init__(self, value: float, seed: int = 0):
        super().__init__(seed)
        self.value = value

    def next_float(self) -> float:
        return self.value


class QueuedRng(SimulationRng):
    """Hands out ``floats`` in order from ``next_float``, then ``fallback`` forever."""

    def __init__(self, floats, fallback: float = 0.99):
        super().__init__(0)
        self.floats = list(floats)
        self.fallback = fallback

    def next_float(self) -> float:
        if self.floats:
            return self.floats.pop(0)
        return self.fallback


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-config-tests",
        action="store_true",
        default=False,
        help="run tests that are intended only for configuration changes",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "config_change: marks tests that should only run when configuration files change",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-config-tests"):
        return

    skip_marker = pytest.mark.skip(
        reason="Run only when configuration is modified (use --run-config-tests)",
    )

    for item in items:
        if "config_change" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def constant_rng():
    return ConstantRng


@pytest.fixture
def queued_rng():
    return QueuedRng


@pytest.fixture
def make_world():
    def _make(rng: SimulationRng | None = None, **overrides) -> World:
        overrides.setdefault("seed", 1234)
        overrides.setdefault("initial_population", 0)
        return World(SimulationConfig(**overrides), rng=rng)

    return _make
