#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from ..lib.constants import DeviceType, EventType, MessageType


@dataclass(frozen=True)
class ModuleRecord:
    """
    One module entry reported by a heartbeat, init or module-info message

    Fields:
      - mod_addr: module address on the gateway (port index)
      - mod_id: module serial, always a decimal string (can exceed 2**53
          in some encodings, so never kept numeric)
      - u_total: number of slots (u positions) the module has
      - fw_ver: firmware version when the message carries it
    """

    mod_addr: int
    mod_id: str = ""
    u_total: int = 0
    fw_ver: Optional[str] = None


@dataclass(frozen=True)
class TagItem:
    """
    One RFID tag record

    action is only set by the event protocol (V6800):
      "attached" / "detached" / None (no transition could be inferred)
    """

    u_pos: int
    alarm_status: int = 0
    tag_id: Optional[str] = None
    action: Optional[str] = None


@dataclass(frozen=True)
class SensorReading:
    """
    One sensor slot

    None means "slot unused" and is never turned into telemetry
    """

    sensor_addr: int
    temp: Optional[float] = None
    hum: Optional[float] = None
    noise: Optional[float] = None


@dataclass(frozen=True)
class PowerMeta:
    """Power block of a heartbeat. main_power is always present"""

    main_power: bool
    backup_power: bool = False
    voltage: Optional[float] = None
    current: Optional[float] = None


@dataclass(frozen=True)
class GatewayInfo:
    """Gateway-level identity (V5008 device info response, V6800 init)"""

    ip: Optional[str] = None
    mac: Optional[str] = None
    model: Optional[str] = None
    fw_ver: Optional[str] = None
    mask: Optional[str] = None
    gateway_ip: Optional[str] = None


@dataclass(frozen=True)
class ModuleBlock:
    """
    Per-module sub-document of a V6800 message

    V6800 batches several modules into one JSON document, each block carries
    only the fields relevant for the message type.
    """

    mod_addr: Optional[int]
    mod_id: str = ""
    items: Tuple[TagItem, ...] = ()
    sensors: Tuple[SensorReading, ...] = ()
    door_state: Optional[str] = None
    result: Optional[str] = None
    color_map: Optional[Tuple[int, ...]] = None


@dataclass(frozen=True)
class IntermediateMessage:
    """
    Protocol-neutral decoded message

    Produced by a codec per inbound message and consumed once by the
    normalizer. Common fields are always set; the rest depends on
    message_type:

      - HEARTBEAT:    modules, meta
      - LABEL_STATE:  mod_addr, mod_id, u_total, online_count, items (V5008)
                      data[].items (V6800)
      - TEM_HUM/NOISE: mod_addr, mod_id, sensors (V5008), data[].sensors (V6800)
      - DOOR_STATE:   mod_addr, mod_id, door_state (V5008), data[] (V6800)
      - OPE_ACK:      result, original_req, color_map (V5008), data[] (V6800)
      - INIT:         device, modules
      - DEVICE_INFO:  device
      - MODULE_INFO:  modules
    """

    topic: str
    device_id: str
    device_type: DeviceType
    message_type: MessageType
    message_id: str
    ts: str
    raw_message_type: str = ""
    message: Optional[str] = None  # frame as uppercase hex (binary protocol only)

    mod_addr: Optional[int] = None
    mod_id: Optional[str] = None
    u_total: Optional[int] = None
    online_count: Optional[int] = None

    modules: Tuple[ModuleRecord, ...] = ()
    meta: Optional[PowerMeta] = None
    items: Tuple[TagItem, ...] = ()
    sensors: Tuple[SensorReading, ...] = ()
    door_state: Optional[str] = None

    result: Optional[str] = None
    original_req: Optional[str] = None
    color_map: Optional[Tuple[int, ...]] = None
    reported_device_id: Optional[str] = None

    device: Optional[GatewayInfo] = None
    data: Tuple[ModuleBlock, ...] = ()


@dataclass(frozen=True)
class DecodeFailure:
    """
    Returned by a codec instead of raising

    The caller logs it and drops the message.
    """

    topic: str
    reason: str


@dataclass(frozen=True)
class TagState:
    """Content of one occupied u position inside a module shadow"""

    tag_id: Optional[str]
    alarm_status: int = 0


# u_pos -> TagState for one (device_id, mod_addr)
ModuleShadow = Mapping[int, TagState]


@dataclass(frozen=True)
class Identity:
    device_id: str
    device_type: DeviceType
    mod_addr: int = 0
    sensor_addr: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "deviceType": self.device_type.value,
            "modAddr": self.mod_addr,
            "sensorAddr": self.sensor_addr,
        }


@dataclass(frozen=True)
class EventPayload:
    key: str
    value: Any
    raw: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"key": self.key, "value": self.value}
        if self.raw is not None:
            out["raw"] = dict(self.raw)
        return out


@dataclass(frozen=True)
class UnifiedEvent:
    """
    Canonical output of the normalizer

    Example (output of to_dict()):
        {
          "identity": {"deviceId": "2437871205", "deviceType": "V5008",
                       "modAddr": 1, "sensorAddr": 10},
          "type": "SYS_TELEMETRY",
          "ts": "2025-01-01T10:00:00.000Z",
          "payload": {"key": "temperature", "value": 28.48,
                      "raw": {"modId": "3963041727"}}
        }
    """

    identity: Identity
    type: EventType
    ts: str
    payload: EventPayload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "type": self.type.value,
            "ts": self.ts,
            "payload": self.payload.to_dict(),
        }
