#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

import paho.mqtt.client as paho_mqtt

from ...lib.config_loader import MqttConfig
from ..base import IngressAdapter, RawMessageHandler
from ..models import RawMessage


logger = logging.getLogger(__name__)


class MqttIngressAdapter(IngressAdapter):
    """
    MQTT ingress using paho-mqtt

    Subscribes to the device upload topics and hands each message to the
    handler on the paho network thread. Never publishes.

    Notes:
      - In tests we inject a mocked paho client via `client=...`
      - In production we create the client automatically
    """

    def __init__(self, *, cfg: MqttConfig, client: Optional[Any] = None) -> None:
        self._cfg = cfg
        self._subs = list(cfg.topics or [])
        self._handler: Optional[RawMessageHandler] = None
        self._lock = threading.Lock()
        self._connected = False
        self._connects = 0
        self._received = 0
        self._handler_errors = 0

        if client is None:
            self._client = paho_mqtt.Client(
                callback_api_version=paho_mqtt.CallbackAPIVersion.VERSION2,
                client_id=cfg.client_id or "",
            )
        else:
            self._client = client

        if cfg.username:
            self._client.username_pw_set(cfg.username, cfg.password)

        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message
        self._client.on_disconnect = self._on_disconnect

    @property
    def ingress_name(self) -> str:
        return "mqtt"

    @property
    def connected(self) -> bool:
        return self._connected

    def start(self, handler: RawMessageHandler) -> None:
        self._handler = handler
        logger.info(
            "Starting MQTT ingress: host=%s port=%s subs=%d",
            self._cfg.host,
            self._cfg.port,
            len(self._subs),
        )
        self._client.connect(self._cfg.host, self._cfg.port, keepalive=self._cfg.keepalive)
        # Start network loop in background thread, subscriptions happen in _on_connect
        self._client.loop_start()

    def stop(self) -> None:
        logger.info("Stopping MQTT ingress")
        try:
            self._client.loop_stop()
        finally:
            try:
                self._client.disconnect()
            except Exception:
                logger.exception("MQTT disconnect failed")
            self._connected = False

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "connected": self._connected,
                "host": self._cfg.host,
                "port": self._cfg.port,
                "topics": list(self._subs),
                "messages_received": self._received,
                "handler_errors": self._handler_errors,
                "reconnects": max(self._connects - 1, 0),
            }

    # ---- paho callbacks ----

    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if getattr(reason_code, "is_failure", False):
            logger.error("MQTT connection refused: rc=%s", reason_code)
            return
        logger.info("MQTT connected: rc=%s", reason_code)
        with self._lock:
            self._connected = True
            self._connects += 1
        for topic in self._subs:
            try:
                client.subscribe(topic, qos=self._cfg.qos)
            except Exception:
                logger.exception("MQTT subscribe failed: %s", topic)

    def _on_disconnect(
        self, client: Any, userdata: Any, flags: Any, reason_code: Any = None, properties: Any = None
    ) -> None:
        with self._lock:
            self._connected = False
        logger.warning("MQTT disconnected: rc=%s", reason_code)

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        with self._lock:
            self._received += 1
        if not self._handler:
            return
        raw = RawMessage(
            topic=str(getattr(msg, "topic", "")),
            payload=getattr(msg, "payload", None),
            meta={"qos": getattr(msg, "qos", None), "retain": getattr(msg, "retain", None)},
        )
        try:
            self._handler(raw)
        except Exception:
            with self._lock:
                self._handler_errors += 1
            logger.exception("Message handler failed: topic=%s", raw.topic)
