#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Sequence

Row = Mapping[str, Any]


class EventSink(ABC):
    """
    Base interface for event persistence

    Sink responsibilities:
      - insert_telemetry(rows): append time-series rows
      - insert_rfid_events(rows): append audit-log rows
      - upsert_device_state(rows): insert or replace rows keyed by
          (device_id, device_type, mod_addr, sensor_addr, state_type)

    Rows are plain dicts built by storage.records, every call receives at
    least one row.
    """

    @property
    @abstractmethod
    def sink_name(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def insert_telemetry(self, rows: Sequence[Row]) -> None:
        raise NotImplementedError

    @abstractmethod
    def insert_rfid_events(self, rows: Sequence[Row]) -> None:
        raise NotImplementedError

    @abstractmethod
    def upsert_device_state(self, rows: Sequence[Row]) -> None:
        raise NotImplementedError

    def status(self) -> Dict[str, Any]:
        return {"sink": self.sink_name}

    def create_all(self) -> None:
        """Prepare storage (tables etc), optional"""

    def close(self) -> None:
        """Release resources, optional"""
