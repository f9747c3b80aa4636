#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import threading
from typing import Any, Dict, List, Sequence, Tuple

from .base import EventSink, Row
from .records import device_state_key


class MemorySink(EventSink):
    """
    Keeps rows in process memory

    Used when no database URL is configured and in tests.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.telemetry: List[Dict[str, Any]] = []
        self.rfid_events: List[Dict[str, Any]] = []
        self.device_state: Dict[Tuple[Any, ...], Dict[str, Any]] = {}

    @property
    def sink_name(self) -> str:
        return "memory"

    def insert_telemetry(self, rows: Sequence[Row]) -> None:
        with self._lock:
            self.telemetry.extend(dict(r) for r in rows)

    def insert_rfid_events(self, rows: Sequence[Row]) -> None:
        with self._lock:
            self.rfid_events.extend(dict(r) for r in rows)

    def upsert_device_state(self, rows: Sequence[Row]) -> None:
        with self._lock:
            for r in rows:
                row = dict(r)
                self.device_state[device_state_key(row)] = row

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "sink": self.sink_name,
                "telemetry_rows": len(self.telemetry),
                "rfid_event_rows": len(self.rfid_events),
                "device_state_rows": len(self.device_state),
            }
