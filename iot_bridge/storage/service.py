#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List

from ..lib.constants import STATE_EVENT_TYPES, EventType
from ..normalizer.models import UnifiedEvent
from .base import EventSink
from .records import device_state_row, rfid_event_row, telemetry_row

logger = logging.getLogger(__name__)


class StorageService:
    """
    Routes unified events to the sink tables

      SYS_TELEMETRY                        -> insert_telemetry
      SYS_RFID_EVENT                       -> insert_rfid_events
      SYS_RFID_SNAPSHOT, SYS_STATE_CHANGE,
      SYS_DEVICE_INFO, SYS_LIFECYCLE       -> upsert_device_state
      SYS_REQUIRE_SYNC                     -> not stored

    Sink errors propagate to the caller.
    """

    def __init__(self, sink: EventSink) -> None:
        self.sink = sink
        self._started = False
        self._saved: Dict[str, int] = defaultdict(int)

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        self.sink.create_all()
        self._started = True
        logger.info("Storage started: sink=%s", self.sink.sink_name)

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self.sink.close()
        logger.info("Storage stopped")

    def save_batch(self, events: Iterable[UnifiedEvent]) -> int:
        """
        Persist one normalize() result, returns number of rows written
        """
        if not self._started:
            logger.warning("Storage not started, batch dropped")
            return 0

        grouped: Dict[EventType, List[UnifiedEvent]] = defaultdict(list)
        for ev in events:
            grouped[ev.type].append(ev)

        written = 0
        for type_, group in grouped.items():
            if type_ == EventType.SYS_TELEMETRY:
                rows = [telemetry_row(ev) for ev in group]
                self.sink.insert_telemetry(rows)
            elif type_ == EventType.SYS_RFID_EVENT:
                rows = [r for r in (rfid_event_row(ev) for ev in group) if r is not None]
                if not rows:
                    continue
                self.sink.insert_rfid_events(rows)
            elif type_ in STATE_EVENT_TYPES:
                rows = [device_state_row(ev) for ev in group]
                self.sink.upsert_device_state(rows)
            else:
                logger.debug("Not stored: %s x%d", type_.value, len(group))
                continue
            self._saved[type_.value] += len(rows)
            written += len(rows)

        logger.debug("Batch saved: %d row(s), groups=%s", written, [t.value for t in grouped])
        return written

    def status(self) -> Dict[str, Any]:
        return {"started": self._started, "saved": dict(self._saved), **self.sink.status()}
