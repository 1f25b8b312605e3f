import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from protocell.sim.core.config import FieldConfig, SimulationConfig  # noqa: E402


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-config-tests",
        action="store_true",
        default=False,
        help="run tests that check the shipped configuration files",
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
def small_config():
    """Factory for a compact, fast configuration; keyword arguments override top-level fields."""

    def build(width: int = 40, height: int = 30, total_energy: float = 20.0, **overrides) -> SimulationConfig:
        values = dict(seed=7, initial_entity_count=3, max_entities=30)
        values.update(overrides)
        return SimulationConfig(
            energy_field=FieldConfig(width=width, height=height, total_system_energy=total_energy),
            **values,
        )

    return build
