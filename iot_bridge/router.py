#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .ingress.models import RawMessage
from .lib.constants import EventType
from .normalizer.models import DecodeFailure, UnifiedEvent
from .normalizer.registry import CodecRegistry
from .normalizer.unify import UnifyNormalizer
from .storage.service import StorageService

logger = logging.getLogger(__name__)

SyncRequestHandler = Callable[[UnifiedEvent], None]


class Router:
    """
    Routes raw transport messages through decode, normalize and storage

    Responsibilities:
      - Find codec via CodecRegistry.resolve(topic)
      - Decode payload into IntermediateMessage (DecodeFailure -> drop)
      - Normalize into UnifiedEvent list against the shadow store
      - Hand the list to StorageService
      - Pass every SYS_REQUIRE_SYNC to on_require_sync

    Notes:
      - Router does NOT know wire formats; codecs do
      - Router does NOT keep device state; the shadow store does
      - Router does NOT query devices; whoever handles sync requests may
    """

    def __init__(
        self,
        registry: CodecRegistry,
        normalizer: UnifyNormalizer,
        storage: Optional[StorageService] = None,
        on_require_sync: Optional[SyncRequestHandler] = None,
    ) -> None:
        self.registry = registry
        self.normalizer = normalizer
        self.storage = storage
        self.on_require_sync = on_require_sync
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {
            "received": 0,
            "no_codec": 0,
            "decode_failures": 0,
            "normalized": 0,
            "events": 0,
            "sync_requests": 0,
            "storage_errors": 0,
        }

    def _count(self, name: str, n: int = 1) -> None:
        with self._lock:
            self._counters[name] += n

    def on_raw_message(self, msg: RawMessage) -> List[UnifiedEvent]:
        self._count("received")

        codec = self.registry.resolve(msg.topic)
        if codec is None:
            self._count("no_codec")
            logger.debug("No codec for topic %r", msg.topic)
            return []

        decoded = codec.decode(msg.topic, msg.payload)
        if isinstance(decoded, DecodeFailure):
            self._count("decode_failures")
            logger.warning("Decode failed: topic=%s reason=%s", decoded.topic, decoded.reason)
            return []

        events = self.normalizer.normalize(decoded)
        self._count("normalized")
        self._count("events", len(events))
        if not events:
            return events

        if self.storage is not None:
            try:
                self.storage.save_batch(events)
            except Exception:
                self._count("storage_errors")
                logger.exception("Storage failed: topic=%s events=%d", msg.topic, len(events))

        for ev in events:
            if ev.type == EventType.SYS_REQUIRE_SYNC:
                self._count("sync_requests")
                if self.on_require_sync is not None:
                    try:
                        self.on_require_sync(ev)
                    except Exception:
                        logger.exception("Sync request handler failed")
        return events

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            out = dict(self._counters)
        out["dropped"] = out["no_codec"] + out["decode_failures"]
        return out
