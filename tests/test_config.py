from __future__ import annotations

import pydantic
import pytest

from pysyncstate.config import MqttBusConfig, SyncSettings, WritePolicy
from pysyncstate.exceptions import SyncConfigError


def test_defaults_are_immediate_and_subscribed() -> None:
    settings = SyncSettings()
    assert settings.policy is WritePolicy.IMMEDIATE
    assert settings.do_not_subscribe is False
    assert settings.debounce_seconds == 0.0


def test_camel_case_names_and_unknown_options() -> None:
    settings = SyncSettings.model_validate({"doNotSubscribe": True, "debounce": 250, "colour": "blue"})
    assert settings.do_not_subscribe is True
    assert settings.policy is WritePolicy.DEBOUNCE
    assert settings.debounce_seconds == pytest.approx(0.25)


def test_snake_case_names_are_accepted() -> None:
    settings = SyncSettings(do_not_subscribe=True, throttle=500)
    assert settings.policy is WritePolicy.THROTTLE
    assert settings.throttle_seconds == pytest.approx(0.5)


def test_debounce_and_throttle_are_mutually_exclusive() -> None:
    with pytest.raises(SyncConfigError):
        SyncSettings(debounce=100, throttle=100)


def test_negative_interval_is_rejected() -> None:
    with pytest.raises(pydantic.ValidationError):
        SyncSettings(debounce=-1)


def test_settings_are_frozen() -> None:
    settings = SyncSettings()
    with pytest.raises(pydantic.ValidationError):
        settings.debounce = 10  # type: ignore[misc]


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYSYNCSTATE_DO_NOT_SUBSCRIBE", "yes")
    monkeypatch.setenv("PYSYNCSTATE_THROTTLE_MS", "750")
    monkeypatch.delenv("PYSYNCSTATE_DEBOUNCE_MS", raising=False)

    settings = SyncSettings.from_env()
    assert settings.do_not_subscribe is True
    assert settings.throttle == 750

    overridden = SyncSettings.from_env(do_not_subscribe=False)
    assert overridden.do_not_subscribe is False


def test_settings_from_env_rejects_non_numeric(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYSYNCSTATE_DEBOUNCE_MS", "soon")
    monkeypatch.delenv("PYSYNCSTATE_THROTTLE_MS", raising=False)
    with pytest.raises(SyncConfigError):
        SyncSettings.from_env()


def test_mqtt_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYSYNCSTATE_MQTT_HOST", "broker.local")
    monkeypatch.setenv("PYSYNCSTATE_MQTT_PORT", "8883")
    monkeypatch.setenv("PYSYNCSTATE_MQTT_TLS", "1")
    monkeypatch.setenv("PYSYNCSTATE_MQTT_TOPIC_PREFIX", "apps/prefs")

    config = MqttBusConfig.from_env(qos=1)
    assert config.host == "broker.local"
    assert config.port == 8883
    assert config.tls is True
    assert config.qos == 1
    assert config.topic("ck-sync-theme") == "apps/prefs/ck-sync-theme"


def test_mqtt_topic_without_prefix() -> None:
    assert MqttBusConfig(topic_prefix="").topic("mem-sync-a") == "mem-sync-a"
