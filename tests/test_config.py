import pytest

from matrixci.config import Settings
from matrixci.errors import ConfigurationError


def test_defaults():
    s = Settings.from_env({})
    assert s.max_agents == 2
    assert s.step_timeout == 3600.0
    assert s.schedule_binding is None


def test_reads_prefixed_environment():
    s = Settings.from_env({"MATRIXCI_MAX_AGENTS": "6", "MATRIXCI_STEP_TIMEOUT": "90", "OTHER": "x"})
    assert s.max_agents == 6
    assert s.step_timeout == 90.0


def test_overrides_win_and_none_is_ignored():
    s = Settings.from_env({"MATRIXCI_MAX_AGENTS": "6"}, max_agents=3, step_timeout=None)
    assert s.max_agents == 3
    assert s.step_timeout == 3600.0


@pytest.mark.parametrize(
    "env",
    [
        {"MATRIXCI_MAX_AGENTS": "0"},
        {"MATRIXCI_MAX_AGENTS": "many"},
        {"MATRIXCI_STEP_TIMEOUT": "-1"},
        {"MATRIXCI_SCHEDULE_BINDING": "all"},
    ],
)
def test_invalid_values(env):
    with pytest.raises(ConfigurationError, match="invalid settings"):
        Settings.from_env(env)
