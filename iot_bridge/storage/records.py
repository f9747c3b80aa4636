#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Row builders for the three event tables

  iot_telemetry     one numeric sample per row
  iot_rfid_events   append-only attach/detach log
  iot_device_state  current state per (device, module, sensor, state type)
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from ..normalizer.models import UnifiedEvent

DEVICE_STATE_KEY = ("device_id", "device_type", "mod_addr", "sensor_addr", "state_type")


def _identity_columns(event: UnifiedEvent) -> Dict[str, Any]:
    ident = event.identity
    return {
        "device_id": ident.device_id,
        "device_type": ident.device_type.value,
        "mod_addr": ident.mod_addr or 0,
        "sensor_addr": ident.sensor_addr or 0,
    }


def telemetry_row(event: UnifiedEvent) -> Dict[str, Any]:
    """
    Example (output):
        {"device_id": "2437871205", "device_type": "V5008", "mod_addr": 1,
         "sensor_addr": 10, "telemetry_key": "temperature",
         "telemetry_value": 28.48, "timestamp": "2025-01-01T10:00:00.000Z"}
    """
    return {
        **_identity_columns(event),
        "telemetry_key": event.payload.key,
        "telemetry_value": float(event.payload.value),
        "timestamp": event.ts,
    }


def rfid_event_row(event: UnifiedEvent) -> Optional[Dict[str, Any]]:
    """
    Audit row for an attach/detach event

    Returns None for an event without action, the log only records
    transitions.
    """
    value = event.payload.value or {}
    action = value.get("action")
    if action is None:
        return None
    return {
        **_identity_columns(event),
        "tag_id": value.get("tagId"),
        "action": action,
        "timestamp": event.ts,
    }


def device_state_row(event: UnifiedEvent) -> Dict[str, Any]:
    """json_value holds the whole payload ({"key", "value"[, "raw"]}) as JSON text"""
    return {
        **_identity_columns(event),
        "state_type": event.type.value,
        "json_value": json.dumps(event.payload.to_dict(), ensure_ascii=False, sort_keys=True),
        "timestamp": event.ts,
    }


def device_state_key(row: Dict[str, Any]) -> tuple:
    return tuple(row[k] for k in DEVICE_STATE_KEY)
