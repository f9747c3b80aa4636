#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import uvicorn

from .api.server import create_app
from .ingress.mqtt.adapter import MqttIngressAdapter
from .lib.config_loader import AppConfig
from .normalizer.models import UnifiedEvent
from .normalizer.registry import CodecRegistry
from .normalizer.state_store import ShadowStore
from .normalizer.unify import UnifyNormalizer
from .router import Router
from .storage.memory import MemorySink
from .storage.service import StorageService
from .storage.sql import SqlSink

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        force=True,
    )
    logging.captureWarnings(True)


def log_sync_request(event: UnifiedEvent) -> None:
    """Default SYS_REQUIRE_SYNC handler: the module needs a full state query"""
    ident = event.identity
    logger.warning(
        "Sync required: device=%s type=%s mod_addr=%s reason=%s",
        ident.device_id,
        ident.device_type.value,
        ident.mod_addr,
        (event.payload.value or {}).get("reason"),
    )


@dataclass
class Bridge:
    """
    Wired application

    Holds every component so run() and the health endpoint can reach them
    """

    cfg: AppConfig
    store: ShadowStore
    router: Router
    storage: Optional[StorageService] = None
    ingress: Optional[MqttIngressAdapter] = None

    def status(self) -> Dict[str, Any]:
        return {
            "app": {"name": self.cfg.name, "version": self.cfg.version},
            "mqtt": self.ingress.stats() if self.ingress is not None else None,
            "storage": self.storage.status() if self.storage is not None else None,
            "pipeline": self.router.stats(),
            "shadow": self.store.stats(),
        }

    def start(self) -> None:
        if self.storage is not None:
            self.storage.start()
        if self.ingress is not None:
            self.ingress.start(self.router.on_raw_message)

    def stop(self) -> None:
        if self.ingress is not None:
            try:
                self.ingress.stop()
            except Exception:
                logger.exception("Ingress stop failed")
        if self.storage is not None:
            try:
                self.storage.stop()
            except Exception:
                logger.exception("Storage stop failed")


def build_storage(cfg: AppConfig) -> Optional[StorageService]:
    if not cfg.storage.enabled:
        logger.info("Storage disabled")
        return None
    if cfg.storage.url:
        return StorageService(SqlSink(cfg.storage.url))
    logger.info("No database url configured, events kept in memory")
    return StorageService(MemorySink())


def build_app(
    cfg: AppConfig,
    *,
    mqtt_client: Optional[Any] = None,
    with_ingress: bool = True,
) -> Bridge:
    store = ShadowStore()
    storage = build_storage(cfg)
    router = Router(
        registry=CodecRegistry.default(),
        normalizer=UnifyNormalizer(store),
        storage=storage,
        on_require_sync=log_sync_request,
    )
    ingress = MqttIngressAdapter(cfg=cfg.mqtt, client=mqtt_client) if with_ingress else None
    return Bridge(cfg=cfg, store=store, router=router, storage=storage, ingress=ingress)


def run(cfg: AppConfig) -> int:
    bridge = build_app(cfg)
    logger.info("Starting %s %s", cfg.name, cfg.version)
    bridge.start()
    try:
        if cfg.api.enabled:
            app = create_app(bridge.status, title=cfg.name, version=cfg.version)
            uvicorn.run(app, host=cfg.api.host, port=cfg.api.port, log_config=None)
        else:
            stop_event = threading.Event()
            for sig in (signal.SIGINT, signal.SIGTERM):
                signal.signal(sig, lambda *_: stop_event.set())
            stop_event.wait()
    finally:
        bridge.stop()
        logger.info("Shutdown complete")
    return 0
