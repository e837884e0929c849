"""Engine settings and transport configuration for pysyncstate."""

from __future__ import annotations

import dataclasses
import os
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from pysyncstate.exceptions import SyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise SyncConfigError(f"{name} must be a number, got {value!r}") from exc


class WritePolicy(StrEnum):
    IMMEDIATE = "immediate"
    DEBOUNCE = "debounce"
    THROTTLE = "throttle"


class SyncSettings(BaseModel):
    """Per-engine settings.

    Parameters
    ----------
    do_not_subscribe : bool
        Skip the backend's remote-update subscription even when it offers one.
    debounce : float or None
        Quiet period in milliseconds. Writes wait until no change has been
        made for this long and persist only the final value.
    throttle : float or None
        Minimum interval in milliseconds between writes. Changes inside the
        window are folded into one trailing write.

    ``debounce`` and ``throttle`` are mutually exclusive; configuring both
    raises :class:`SyncConfigError`. With neither set, writes are immediate.
    Both the snake_case names and the camelCase names (``doNotSubscribe``)
    are accepted; unknown options are ignored.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    do_not_subscribe: bool = False
    debounce: float | None = Field(default=None, ge=0)
    throttle: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_exclusive_policies(self) -> SyncSettings:
        if self.debounce is not None and self.throttle is not None:
            raise SyncConfigError("debounce and throttle cannot both be set")
        return self

    @property
    def policy(self) -> WritePolicy:
        if self.debounce is not None:
            return WritePolicy.DEBOUNCE
        if self.throttle is not None:
            return WritePolicy.THROTTLE
        return WritePolicy.IMMEDIATE

    @property
    def debounce_seconds(self) -> float:
        return (self.debounce or 0.0) / 1000.0

    @property
    def throttle_seconds(self) -> float:
        return (self.throttle or 0.0) / 1000.0

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncSettings:
        """Create settings from ``PYSYNCSTATE_*`` environment variables.

        Reads ``PYSYNCSTATE_DO_NOT_SUBSCRIBE``, ``PYSYNCSTATE_DEBOUNCE_MS``
        and ``PYSYNCSTATE_THROTTLE_MS``. Explicit keyword arguments override
        environment values.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}

        if "do_not_subscribe" not in overrides:
            kwargs["do_not_subscribe"] = _env_bool(env.get("PYSYNCSTATE_DO_NOT_SUBSCRIBE"), False)

        debounce_env = env.get("PYSYNCSTATE_DEBOUNCE_MS")
        if debounce_env is not None and "debounce" not in overrides:
            kwargs["debounce"] = _env_float("PYSYNCSTATE_DEBOUNCE_MS", debounce_env)

        throttle_env = env.get("PYSYNCSTATE_THROTTLE_MS")
        if throttle_env is not None and "throttle" not in overrides:
            kwargs["throttle"] = _env_float("PYSYNCSTATE_THROTTLE_MS", throttle_env)

        kwargs.update(overrides)
        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class MqttBusConfig:
    """Connection settings for :class:`pysyncstate.bus.MqttBroadcastBus`.

    Parameters
    ----------
    host : str
        Broker host name.
    port : int
        Broker port.
    topic_prefix : str
        Prefix prepended to every channel name to form the MQTT topic.
    client_id : str
        MQTT client id. Empty lets the broker assign one.
    username : str or None
        Optional broker username.
    password : str or None
        Optional broker password.
    keepalive : int
        MQTT keepalive in seconds.
    tls : bool
        Enable TLS with the system trust store.
    qos : int
        Quality of service used for publish and subscribe.
    """

    host: str = "localhost"
    port: int = 1883
    topic_prefix: str = "pysyncstate"
    client_id: str = ""
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    tls: bool = False
    qos: int = 0

    def topic(self, channel: str) -> str:
        return f"{self.topic_prefix}/{channel}" if self.topic_prefix else channel

    @classmethod
    def from_env(cls, **overrides: Any) -> MqttBusConfig:
        """Create configuration from ``PYSYNCSTATE_MQTT_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "PYSYNCSTATE_MQTT_HOST": "host",
            "PYSYNCSTATE_MQTT_TOPIC_PREFIX": "topic_prefix",
            "PYSYNCSTATE_MQTT_CLIENT_ID": "client_id",
            "PYSYNCSTATE_MQTT_USERNAME": "username",
            "PYSYNCSTATE_MQTT_PASSWORD": "password",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        port_env = env.get("PYSYNCSTATE_MQTT_PORT")
        if port_env is not None and "port" not in overrides:
            config_kwargs["port"] = int(_env_float("PYSYNCSTATE_MQTT_PORT", port_env))

        keepalive_env = env.get("PYSYNCSTATE_MQTT_KEEPALIVE")
        if keepalive_env is not None and "keepalive" not in overrides:
            config_kwargs["keepalive"] = int(_env_float("PYSYNCSTATE_MQTT_KEEPALIVE", keepalive_env))

        if "tls" not in overrides:
            config_kwargs["tls"] = _env_bool(env.get("PYSYNCSTATE_MQTT_TLS"), False)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
