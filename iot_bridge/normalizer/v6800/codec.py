#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..base import DecodeResult, ProtocolCodec, split_topic
from ..models import (
    DecodeFailure,
    GatewayInfo,
    IntermediateMessage,
    ModuleBlock,
    ModuleRecord,
    PowerMeta,
    SensorReading,
    TagItem,
)
from ...lib.constants import (
    DOOR_STATE_CLOSED,
    DOOR_STATE_OPEN,
    DeviceType,
    MessageType,
    ResponseResult,
    RfidAction,
    V6800_TOPIC_PREFIX,
)

logger = logging.getLogger(__name__)

_SUFFIX_TYPES = {
    "HeartBeat": MessageType.HEARTBEAT,
    "LabelState": MessageType.LABEL_STATE,
    "TemHum": MessageType.TEM_HUM,
    "Door": MessageType.DOOR_STATE,
    "Init": MessageType.INIT,
    "OpeAck": MessageType.OPE_ACK,
}

# msg_type values of OpeAck documents
MSG_COLOR_QUERY = "u_color"
MSG_SET_PROPERTY_RESULT = "set_module_property_result_req"
MSG_CLEAR_ALARM = "clear_u_warning"


def infer_rfid_action(old_state: Any, new_state: Any) -> Optional[str]:
    """
    Derive tag action from the (old_state, new_state) flags

    Examples:
        infer_rfid_action(0, 1) -> "attached"
        infer_rfid_action(1, 0) -> "detached"
        infer_rfid_action(1, 1) -> None
        infer_rfid_action(None, 1) -> None
    """
    if isinstance(old_state, bool) or isinstance(new_state, bool):
        return None
    if old_state == 0 and new_state == 1:
        return RfidAction.ATTACHED
    if old_state == 1 and new_state == 0:
        return RfidAction.DETACHED
    return None


def _first(doc: Mapping[str, Any], *keys: str) -> Any:
    """Return the first value that is present and not None"""
    for k in keys:
        v = doc.get(k)
        if v is not None:
            return v
    return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _as_id(value: Any) -> str:
    """
    Examples:
        _as_id(727046823) -> "727046823"
        _as_id(123.0) -> "123"
        _as_id("abc") -> "abc"
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = _as_int(value)
        return "" if number is None else str(number)
    return _as_str(value)


def _iter_dicts(value: Any) -> List[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


class V6800Codec(ProtocolCodec):
    """
    Codec for V6800 JSON documents

    Dispatch is by topic suffix (HeartBeat, LabelState, TemHum, Door, Init,
    OpeAck). Field names are remapped to the shared intermediate form:

      module_index / host_gateway_port_index  -> mod_addr
      module_sn / extend_module_sn            -> mod_id (string)
      u_data[].old_state/new_state            -> items[].action
    """

    def __init__(self, clock=None) -> None:
        super().__init__(clock)
        self._parsers: Dict[MessageType, Callable[[Mapping[str, Any]], Dict[str, Any]]] = {
            MessageType.HEARTBEAT: self._parse_heartbeat,
            MessageType.LABEL_STATE: self._parse_label_state,
            MessageType.TEM_HUM: self._parse_tem_hum,
            MessageType.DOOR_STATE: self._parse_door_state,
            MessageType.INIT: self._parse_init,
            MessageType.OPE_ACK: self._parse_ope_ack,
        }

    @property
    def device_type(self) -> DeviceType:
        return DeviceType.V6800

    def can_handle(self, topic: str) -> bool:
        return isinstance(topic, str) and topic.startswith(V6800_TOPIC_PREFIX)

    def decode(self, topic: str, payload: Any) -> DecodeResult:
        parts = split_topic(topic) if isinstance(topic, str) else None
        if parts is None:
            return DecodeFailure(topic=str(topic), reason="topic carries no device id")
        device_id, kind = parts

        message_type = _SUFFIX_TYPES.get(kind)
        if message_type is None:
            return DecodeFailure(topic=topic, reason=f"unrecognized topic suffix {kind!r}")

        try:
            if isinstance(payload, (bytes, bytearray, memoryview)):
                payload = bytes(payload).decode("utf-8")
            doc = json.loads(payload)
        except (TypeError, UnicodeDecodeError, json.JSONDecodeError) as e:
            return DecodeFailure(topic=topic, reason=f"invalid JSON payload: {e}")
        if not isinstance(doc, dict):
            return DecodeFailure(topic=topic, reason=f"expected JSON object, got {type(doc).__name__}")

        try:
            fields = self._parsers[message_type](doc)
        except (TypeError, ValueError, OverflowError) as e:
            return DecodeFailure(topic=topic, reason=f"malformed {message_type.value} document: {e}")
        logger.debug("V6800 %s decoded: device=%s", message_type.value, device_id)
        return IntermediateMessage(
            topic=topic,
            device_id=device_id,
            device_type=DeviceType.V6800,
            message_type=message_type,
            message_id=_as_id(_first(doc, "uuid_number", "code")),
            ts=self._clock(),
            raw_message_type=_as_str(doc.get("msg_type")),
            **fields,
        )

    # ---- per-type parsers ----

    def _parse_heartbeat(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        meta = PowerMeta(
            main_power=bool(doc.get("main_power")),
            backup_power=bool(doc.get("backup_power")),
            voltage=_as_float(doc.get("bus_V")),
            current=_as_float(doc.get("bus_I")),
        )
        modules: List[ModuleRecord] = []
        for m in _iter_dicts(doc.get("data")):
            mod_addr = _as_int(_first(m, "module_index", "host_gateway_port_index"))
            if mod_addr is None:
                logger.debug("V6800 heartbeat: module entry without index skipped: %r", m)
                continue
            modules.append(
                ModuleRecord(
                    mod_addr=mod_addr,
                    mod_id=_as_str(_first(m, "module_sn", "extend_module_sn")),
                    u_total=_as_int(m.get("module_u_num")) or 0,
                )
            )
        return {"meta": meta, "modules": tuple(modules)}

    def _parse_label_state(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        blocks: List[ModuleBlock] = []
        for m in _iter_dicts(doc.get("data")):
            items: List[TagItem] = []
            for t in _iter_dicts(m.get("u_data")):
                u_pos = _as_int(t.get("u_index"))
                if u_pos is None:
                    logger.debug("V6800 label state: tag entry without u_index skipped: %r", t)
                    continue
                tag_code = t.get("tag_code")
                items.append(
                    TagItem(
                        u_pos=u_pos,
                        alarm_status=_as_int(t.get("warning")) or 0,
                        tag_id=str(tag_code) if tag_code else None,
                        action=infer_rfid_action(t.get("old_state"), t.get("new_state")),
                    )
                )
            blocks.append(
                ModuleBlock(
                    mod_addr=_as_int(_first(m, "host_gateway_port_index", "index")),
                    mod_id=_as_str(_first(m, "extend_module_sn", "module_id")),
                    items=tuple(items),
                )
            )
        return {"data": tuple(blocks)}

    def _parse_tem_hum(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        blocks: List[ModuleBlock] = []
        for m in _iter_dicts(doc.get("data")):
            sensors: List[SensorReading] = []
            for s in _iter_dicts(m.get("th_data")):
                sensor_addr = _as_int(s.get("temper_position"))
                if sensor_addr is None:
                    continue
                sensors.append(
                    SensorReading(
                        sensor_addr=sensor_addr,
                        temp=_as_float(s.get("temper_swot")),
                        hum=_as_float(s.get("hygrometer_swot")),
                    )
                )
            blocks.append(
                ModuleBlock(
                    mod_addr=_as_int(m.get("host_gateway_port_index")),
                    mod_id=_as_str(m.get("extend_module_sn")),
                    sensors=tuple(sensors),
                )
            )
        return {"data": tuple(blocks)}

    def _parse_door_state(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        blocks: List[ModuleBlock] = []
        for m in _iter_dicts(doc.get("data")):
            new_state = m.get("new_state")
            door_state = None
            if new_state is not None:
                door_state = DOOR_STATE_OPEN if new_state else DOOR_STATE_CLOSED
            blocks.append(
                ModuleBlock(
                    mod_addr=_as_int(m.get("host_gateway_port_index")),
                    mod_id=_as_str(m.get("extend_module_sn")),
                    door_state=door_state,
                )
            )
        return {"data": tuple(blocks)}

    def _parse_init(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        device = GatewayInfo(
            ip=_as_str(doc.get("gateway_ip")) or None,
            mac=_as_str(doc.get("gateway_mac")) or None,
        )
        modules: List[ModuleRecord] = []
        for m in _iter_dicts(doc.get("data")):
            mod_addr = _as_int(m.get("module_index"))
            if mod_addr is None:
                continue
            modules.append(
                ModuleRecord(
                    mod_addr=mod_addr,
                    mod_id=_as_str(m.get("module_sn")),
                    u_total=_as_int(m.get("module_u_num")) or 0,
                    fw_ver=_as_str(m.get("module_sw_version")) or None,
                )
            )
        return {"device": device, "modules": tuple(modules)}

    def _parse_ope_ack(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        msg_type = doc.get("msg_type")
        blocks: List[ModuleBlock] = []
        for m in _iter_dicts(doc.get("data")):
            result = None
            color_map = None
            if msg_type == MSG_COLOR_QUERY:
                color_map = tuple(
                    c.get("code") for c in _iter_dicts(m.get("color_data")) if c.get("code") is not None
                )
            elif msg_type == MSG_SET_PROPERTY_RESULT:
                ok = m.get("set_property_result") == 0
                result = ResponseResult.SUCCESS if ok else ResponseResult.FAILURE
            elif msg_type == MSG_CLEAR_ALARM:
                result = ResponseResult.SUCCESS if m.get("ctr_flag") else ResponseResult.FAILURE
            blocks.append(
                ModuleBlock(
                    mod_addr=_as_int(_first(m, "host_gateway_port_index", "index")),
                    mod_id=_as_str(_first(m, "extend_module_sn", "module_id")),
                    result=result,
                    color_map=color_map,
                )
            )
        return {"data": tuple(blocks)}
