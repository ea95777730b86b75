import pytest

from marketbot.utils import ConfigurationError, Timer, load_and_validate_env, sanitize_for_logging


def test_overrides_are_coerced():
    config = load_and_validate_env({
        "CATALOG_LIST_LIMIT": "5",
        "AUTO_ESCALATION_ENABLED": "false",
        "INTENT_CONFIDENCE_THRESHOLD": "0.8",
    })
    assert config["CATALOG_LIST_LIMIT"] == 5
    assert config["AUTO_ESCALATION_ENABLED"] is False
    assert config["INTENT_CONFIDENCE_THRESHOLD"] == 0.8


def test_invalid_values_fall_back_to_defaults():
    config = load_and_validate_env({"CATALOG_LIST_LIMIT": "muchos", "LOG_JSON": "tal vez"})
    assert config["CATALOG_LIST_LIMIT"] == 12
    assert config["LOG_JSON"] is True


def test_threshold_outside_unit_interval_is_rejected():
    with pytest.raises(ConfigurationError):
        load_and_validate_env({"ESCALATION_CONFIDENCE_THRESHOLD": "1.5"})


def test_sanitize_for_logging():
    assert sanitize_for_logging(None) == ""
    assert "[REDACTED]" in sanitize_for_logging("mi número es +57 300 123 4567")
    assert "[REDACTED]" in sanitize_for_logging("clave sk-abc123XYZ")
    assert sanitize_for_logging("hola " * 20, max_length=10) == "hola hola ..."


def test_timer_measures_duration():
    with Timer("test") as timer:
        pass
    assert timer.duration_ms >= 0
