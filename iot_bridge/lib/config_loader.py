#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .constants import DEFAULT_MQTT_TOPICS

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "app": {"name": "iot-unified-bridge", "version": "0.0.0", "log_level": "INFO"},
    "mqtt": {
        "host": "localhost",
        "port": 1883,
        "client_id": "iot-unified-bridge",
        "username": None,
        "password": None,
        "keepalive": 60,
        "qos": 1,
        "topics": list(DEFAULT_MQTT_TOPICS),
    },
    "storage": {"enabled": True, "url": None},
    "api": {"enabled": True, "host": "0.0.0.0", "port": 8000},
}

# env var -> (section, key, converter)
ENV_OVERRIDES = {
    "MQTT_HOST": ("mqtt", "host", str),
    "MQTT_PORT": ("mqtt", "port", int),
    "MQTT_USERNAME": ("mqtt", "username", str),
    "MQTT_PASSWORD": ("mqtt", "password", str),
    "MQTT_CLIENT_ID": ("mqtt", "client_id", str),
    "MQTT_TOPICS": ("mqtt", "topics", lambda v: [t.strip() for t in v.split(",") if t.strip()]),
    "DB_URL": ("storage", "url", str),
    "API_HOST": ("api", "host", str),
    "API_PORT": ("api", "port", int),
    "LOG_LEVEL": ("app", "log_level", str),
}


@dataclass(frozen=True)
class MqttConfig:
    """
    MQTT connection settings for paho-mqtt client
    """

    host: str = "localhost"
    port: int = 1883
    client_id: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: int = 60
    qos: int = 1
    topics: Tuple[str, ...] = DEFAULT_MQTT_TOPICS


@dataclass(frozen=True)
class StorageConfig:
    """url is an SQLAlchemy database URL, events are kept in memory without it"""

    enabled: bool = True
    url: Optional[str] = None


@dataclass(frozen=True)
class ApiConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass(frozen=True)
class AppConfig:
    name: str = "iot-unified-bridge"
    version: str = "0.0.0"
    log_level: str = "INFO"
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    api: ApiConfig = field(default_factory=ApiConfig)


@dataclass(frozen=True)
class LoadedConfig:
    """
    Merged configuration: defaults <- JSON file <- environment

    Example (output):
        LoadedConfig(raw={...merged config dict...})
        LoadedConfig(...).app.mqtt.host -> "broker.local"
    """

    raw: Dict[str, Any]

    @property
    def app(self) -> AppConfig:
        return build_app_config(self.raw)


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge override into a copy of base

    Examples:
        _merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}}) -> {"a": {"x": 1, "y": 3}}
        _merge({"a": 1}, {"b": 2}) -> {"a": 1, "b": 2}
    """
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def _apply_env(raw: Dict[str, Any], env: Mapping[str, str]) -> None:
    for var, (section, key, conv) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        try:
            raw.setdefault(section, {})[key] = conv(value)
        except ValueError as e:
            raise ValueError(f"Invalid value for {var}: {value!r}") from e
        logger.debug("Config override from environment: %s", var)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    sec = raw.get(name) or {}
    if not isinstance(sec, Mapping):
        raise ValueError(f"Config section {name!r} must be an object, got {type(sec).__name__}")
    return sec


def _as_int(sec: Mapping[str, Any], section: str, key: str, default: int) -> int:
    value = sec.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}") from e


def build_app_config(raw: Mapping[str, Any]) -> AppConfig:
    """
    Build typed config from merged dict

    Raises ValueError naming the offending key when a value has the wrong type.
    """
    app = _section(raw, "app")
    mqtt = _section(raw, "mqtt")
    storage = _section(raw, "storage")
    api = _section(raw, "api")

    topics = mqtt.get("topics", DEFAULT_MQTT_TOPICS)
    if isinstance(topics, str) or not all(isinstance(t, str) for t in topics):
        raise ValueError(f"mqtt.topics must be a list of strings, got {topics!r}")

    qos = _as_int(mqtt, "mqtt", "qos", 1)
    if qos not in (0, 1, 2):
        raise ValueError(f"mqtt.qos must be 0, 1 or 2, got {qos!r}")

    return AppConfig(
        name=str(app.get("name", "iot-unified-bridge")),
        version=str(app.get("version", "0.0.0")),
        log_level=str(app.get("log_level", "INFO")).upper(),
        mqtt=MqttConfig(
            host=str(mqtt.get("host", "localhost")),
            port=_as_int(mqtt, "mqtt", "port", 1883),
            client_id=mqtt.get("client_id"),
            username=mqtt.get("username") or None,
            password=mqtt.get("password") or None,
            keepalive=_as_int(mqtt, "mqtt", "keepalive", 60),
            qos=qos,
            topics=tuple(topics),
        ),
        storage=StorageConfig(
            enabled=bool(storage.get("enabled", True)),
            url=storage.get("url") or None,
        ),
        api=ApiConfig(
            enabled=bool(api.get("enabled", True)),
            host=str(api.get("host", "0.0.0.0")),
            port=_as_int(api, "api", "port", 8000),
        ),
    )


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> LoadedConfig:
    """
    Load JSON config from disk and apply environment overrides.

    Input:
      path: path to JSON file, None to use built-in defaults only.
      env: environment mapping, os.environ when omitted.

    Output:
      LoadedConfig with .raw containing the merged dict.

    Example:
      cfg = load_config("config/default.json", env={"MQTT_HOST": "broker"}).app
      cfg.mqtt.host -> "broker"
    """
    raw = copy.deepcopy(DEFAULTS)
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        raw = _merge(raw, data)
        logger.debug("Config loaded from %s", path)

    _apply_env(raw, os.environ if env is None else env)
    return LoadedConfig(raw=raw)
