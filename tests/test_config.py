"""Tests for ParamStateConfig and the process default config."""
import pytest

from paramstate import (
    ConfigurationError,
    NamespaceDirectory,
    ParamStateConfig,
    get_default_config,
    set_default_config,
)


def test_defaults():
    config = ParamStateConfig()

    assert config.debounce_ms == 1000
    assert config.accept_reject_debounce_ms == 0
    assert config.session_priority == 0
    assert config.generic_priority == -1
    assert config.max_history_size is None
    assert config.debounce_seconds(False) == 1.0
    assert config.debounce_seconds(True) == 0.0


@pytest.mark.parametrize('kwargs', [
    {'debounce_ms': -1},
    {'accept_reject_debounce_ms': -5},
    {'max_history_size': 0},
])
def test_invalid_values_raise(kwargs):
    with pytest.raises(ConfigurationError):
        ParamStateConfig(**kwargs)


def test_from_mapping_coerces_and_ignores_unknown(caplog):
    config = ParamStateConfig.from_mapping({'debounce_ms': '250', 'max_history_size': 'none', 'colour': 'red'})

    assert config.debounce_ms == 250
    assert config.max_history_size is None
    assert 'colour' in caplog.text


def test_from_mapping_rejects_non_integers():
    with pytest.raises(ConfigurationError):
        ParamStateConfig.from_mapping({'debounce_ms': 'soon'})


def test_from_env():
    environ = {
        'PARAMSTATE_DEBOUNCE_MS': '300',
        'PARAMSTATE_MAX_HISTORY_SIZE': '50',
        'OTHER_DEBOUNCE_MS': '1',
    }

    config = ParamStateConfig.from_env(environ)

    assert config.debounce_ms == 300
    assert config.max_history_size == 50


def test_default_config_is_used_by_directory():
    set_default_config(ParamStateConfig(max_history_size=3))

    assert get_default_config().max_history_size == 3
    assert NamespaceDirectory().history.max_size == 3
    assert NamespaceDirectory(config=ParamStateConfig()).history.max_size is None
