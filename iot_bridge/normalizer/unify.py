#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..lib.constants import (
    DOOR_STATE_OPEN,
    KEY_COLOR_MAP,
    KEY_CURRENT,
    KEY_DEVICE_INFO,
    KEY_DEVICE_STATUS,
    KEY_DOOR_STATE,
    KEY_HUMIDITY,
    KEY_MODULE_INFO,
    KEY_NOISE,
    KEY_OPERATION_RESULT,
    KEY_REQUIRE_SYNC,
    KEY_RFID_EVENT,
    KEY_RFID_SNAPSHOT,
    KEY_TEMPERATURE,
    KEY_VOLTAGE,
    DeviceType,
    EventType,
    LifecycleStatus,
    MessageType,
    ResponseResult,
    RfidAction,
    SyncReason,
)
from .models import (
    EventPayload,
    GatewayInfo,
    Identity,
    IntermediateMessage,
    ModuleRecord,
    SensorReading,
    TagItem,
    TagState,
    UnifiedEvent,
)
from .state_store import ShadowStore

logger = logging.getLogger(__name__)

Handler = Callable[[IntermediateMessage], List[UnifiedEvent]]


class NormalizationFailure(ValueError):
    """Intermediate message lacks a sub-field its message type requires"""


def _require(value: Any, name: str, im: IntermediateMessage) -> Any:
    if value is None:
        raise NormalizationFailure(
            f"{im.device_type.value} {im.message_type.value} from {im.device_id} has no {name}"
        )
    return value


def _tag_value(u_pos: int, tag: TagState, action: Optional[str]) -> Dict[str, Any]:
    return {"action": action, "tagId": tag.tag_id, "uPos": u_pos, "alarmStatus": tag.alarm_status}


def _snapshot_items(shadow: Mapping[int, TagState]) -> List[Dict[str, Any]]:
    return [
        {"uPos": u_pos, "tagId": shadow[u_pos].tag_id, "alarmStatus": shadow[u_pos].alarm_status}
        for u_pos in sorted(shadow)
    ]


class UnifyNormalizer:
    """
    Turns IntermediateMessage into an ordered list of UnifiedEvent

    Two reconciliation directions against the shadow store:

      - diff (V5008 LABEL_STATE): the message is a full snapshot of a module,
        events are derived by comparing it with the previous shadow, which is
        then replaced wholesale. Resending the same snapshot yields only the
        trailing SYS_RFID_SNAPSHOT.

      - patch (V6800 LABEL_STATE): the message carries discrete attach/detach
        events, they are applied to a copy of the shadow which is then stored.
        Without a shadow the events are passed through and one
        SYS_REQUIRE_SYNC is emitted for the module; nothing is stored.

    Comparison is by u position only: a different tag at an occupied position
    is not reported as a change by the diff.

    normalize() never raises. Any failure is logged and an empty list returned.
    """

    def __init__(self, store: Optional[ShadowStore] = None) -> None:
        self.store = store if store is not None else ShadowStore()
        self._handlers: Dict[Tuple[DeviceType, MessageType], Handler] = {
            (DeviceType.V5008, MessageType.HEARTBEAT): self._heartbeat,
            (DeviceType.V5008, MessageType.LABEL_STATE): self._diff_rfid,
            (DeviceType.V5008, MessageType.TEM_HUM): self._module_telemetry,
            (DeviceType.V5008, MessageType.NOISE): self._module_telemetry,
            (DeviceType.V5008, MessageType.DOOR_STATE): self._door_state,
            (DeviceType.V5008, MessageType.OPE_ACK): self._response,
            (DeviceType.V5008, MessageType.DEVICE_INFO): self._device_info,
            (DeviceType.V5008, MessageType.MODULE_INFO): self._module_info,
            (DeviceType.V6800, MessageType.HEARTBEAT): self._heartbeat,
            (DeviceType.V6800, MessageType.LABEL_STATE): self._patch_rfid,
            (DeviceType.V6800, MessageType.TEM_HUM): self._block_telemetry,
            (DeviceType.V6800, MessageType.DOOR_STATE): self._block_door_state,
            (DeviceType.V6800, MessageType.INIT): self._init,
            (DeviceType.V6800, MessageType.OPE_ACK): self._block_response,
        }

    def normalize(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        handler = self._handlers.get((im.device_type, im.message_type))
        if handler is None:
            logger.warning(
                "No normalization for %s %s (device=%s)",
                getattr(im.device_type, "value", im.device_type),
                getattr(im.message_type, "value", im.message_type),
                im.device_id,
            )
            return []
        try:
            return handler(im)
        except NormalizationFailure as e:
            logger.warning("Normalization skipped: %s", e)
            return []
        except Exception:
            logger.exception("Normalization failed: topic=%s message_id=%s", im.topic, im.message_id)
            return []

    # ---- event builders ----

    @staticmethod
    def _event(
        im: IntermediateMessage,
        type_: EventType,
        key: str,
        value: Any,
        *,
        mod_addr: int = 0,
        sensor_addr: int = 0,
        raw: Optional[Mapping[str, Any]] = None,
    ) -> UnifiedEvent:
        return UnifiedEvent(
            identity=Identity(
                device_id=im.device_id,
                device_type=im.device_type,
                mod_addr=mod_addr,
                sensor_addr=sensor_addr,
            ),
            type=type_,
            ts=im.ts,
            payload=EventPayload(key=key, value=value, raw=raw),
        )

    def _rfid_event(self, im: IntermediateMessage, mod_addr: int, u_pos: int, tag: TagState, action) -> UnifiedEvent:
        return self._event(
            im, EventType.SYS_RFID_EVENT, KEY_RFID_EVENT, _tag_value(u_pos, tag, action),
            mod_addr=mod_addr, sensor_addr=u_pos,
        )

    def _snapshot(
        self, im: IntermediateMessage, mod_addr: int, mod_id: Optional[str], shadow: Mapping[int, TagState]
    ) -> UnifiedEvent:
        return self._event(
            im, EventType.SYS_RFID_SNAPSHOT, KEY_RFID_SNAPSHOT,
            {"modId": mod_id, "items": _snapshot_items(shadow)},
            mod_addr=mod_addr,
        )

    # ---- RFID reconciliation ----

    def _diff_rfid(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        mod_addr = _require(im.mod_addr, "mod_addr", im)
        curr: Dict[int, TagState] = {
            item.u_pos: TagState(tag_id=item.tag_id, alarm_status=item.alarm_status) for item in im.items
        }

        events: List[UnifiedEvent] = []
        with self.store.key_lock(im.device_id, mod_addr):
            prev = self.store.get(im.device_id, mod_addr) or {}
            for u_pos in sorted(set(prev) - set(curr)):
                events.append(self._rfid_event(im, mod_addr, u_pos, prev[u_pos], RfidAction.DETACHED))
            for u_pos in sorted(set(curr) - set(prev)):
                events.append(self._rfid_event(im, mod_addr, u_pos, curr[u_pos], RfidAction.ATTACHED))
            self.store.set(im.device_id, mod_addr, curr)

        events.append(self._snapshot(im, mod_addr, im.mod_id, curr))
        logger.debug(
            "Diff %s/%s: %d change(s), %d tag(s) present",
            im.device_id, mod_addr, len(events) - 1, len(curr),
        )
        return events

    def _patch_rfid(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        events: List[UnifiedEvent] = []
        for block in im.data:
            if block.mod_addr is None:
                logger.debug("Label state block without module address skipped: device=%s", im.device_id)
                continue
            events.extend(self._patch_module(im, block.mod_addr, block.mod_id, block.items))
        return events

    def _patch_module(
        self, im: IntermediateMessage, mod_addr: int, mod_id: str, items: Iterable[TagItem]
    ) -> List[UnifiedEvent]:
        events: List[UnifiedEvent] = []
        with self.store.key_lock(im.device_id, mod_addr):
            current = self.store.get(im.device_id, mod_addr)

            if current is None:
                for item in items:
                    tag = TagState(tag_id=item.tag_id, alarm_status=item.alarm_status)
                    events.append(self._rfid_event(im, mod_addr, item.u_pos, tag, item.action))
                events.append(
                    self._event(
                        im, EventType.SYS_REQUIRE_SYNC, KEY_REQUIRE_SYNC,
                        {"reason": SyncReason.CACHE_MISS},
                        mod_addr=mod_addr,
                    )
                )
                logger.info("No shadow for %s/%s, sync required", im.device_id, mod_addr)
                return events

            working = dict(current)
            for item in items:
                tag = TagState(tag_id=item.tag_id, alarm_status=item.alarm_status)
                if item.action == RfidAction.ATTACHED:
                    working[item.u_pos] = tag
                elif item.action == RfidAction.DETACHED:
                    working.pop(item.u_pos, None)
                events.append(self._rfid_event(im, mod_addr, item.u_pos, tag, item.action))
            self.store.set(im.device_id, mod_addr, working)

        events.append(self._snapshot(im, mod_addr, mod_id, working))
        return events

    # ---- telemetry ----

    def _sensor_events(
        self, im: IntermediateMessage, mod_addr: int, mod_id: Optional[str], sensors: Iterable[SensorReading]
    ) -> List[UnifiedEvent]:
        events: List[UnifiedEvent] = []
        raw = {"modId": mod_id}
        for s in sensors:
            for key, value in ((KEY_TEMPERATURE, s.temp), (KEY_HUMIDITY, s.hum), (KEY_NOISE, s.noise)):
                if value is None:
                    continue
                events.append(
                    self._event(
                        im, EventType.SYS_TELEMETRY, key, value,
                        mod_addr=mod_addr, sensor_addr=s.sensor_addr, raw=raw,
                    )
                )
        return events

    def _module_telemetry(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        mod_addr = _require(im.mod_addr, "mod_addr", im)
        return self._sensor_events(im, mod_addr, im.mod_id, im.sensors)

    def _block_telemetry(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        events: List[UnifiedEvent] = []
        for block in im.data:
            if block.mod_addr is None:
                logger.debug("Telemetry block without module address skipped: device=%s", im.device_id)
                continue
            events.extend(self._sensor_events(im, block.mod_addr, block.mod_id, block.sensors))
        return events

    def _heartbeat(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        meta = _require(im.meta, "meta", im)
        raw = {"mainPower": meta.main_power, "backupPower": meta.backup_power}
        events: List[UnifiedEvent] = []
        for key, value in ((KEY_VOLTAGE, meta.voltage), (KEY_CURRENT, meta.current)):
            if value is not None:
                events.append(self._event(im, EventType.SYS_TELEMETRY, key, value, raw=raw))
        status = LifecycleStatus.ONLINE if meta.main_power else LifecycleStatus.BACKUP_POWER
        events.append(self._event(im, EventType.SYS_LIFECYCLE, KEY_DEVICE_STATUS, status, raw=raw))
        return events

    # ---- state changes ----

    def _door_event(self, im: IntermediateMessage, mod_addr: int, mod_id: Optional[str], state: str) -> UnifiedEvent:
        return self._event(
            im, EventType.SYS_STATE_CHANGE, KEY_DOOR_STATE,
            1 if state == DOOR_STATE_OPEN else 0,
            mod_addr=mod_addr, raw={"modId": mod_id, "doorState": state},
        )

    def _door_state(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        if im.door_state is None:
            return []
        mod_addr = _require(im.mod_addr, "mod_addr", im)
        return [self._door_event(im, mod_addr, im.mod_id, im.door_state)]

    def _block_door_state(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        return [
            self._door_event(im, block.mod_addr, block.mod_id, block.door_state)
            for block in im.data
            if block.mod_addr is not None and block.door_state is not None
        ]

    def _result_event(
        self, im: IntermediateMessage, result: str, mod_addr: int = 0, **raw: Any
    ) -> UnifiedEvent:
        return self._event(
            im, EventType.SYS_STATE_CHANGE, KEY_OPERATION_RESULT,
            1 if result == ResponseResult.SUCCESS else 0,
            mod_addr=mod_addr, raw={"result": result, **raw},
        )

    def _response(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        result = _require(im.result, "result", im)
        raw: Dict[str, Any] = {"originalReq": im.original_req}
        if im.color_map is not None:
            raw["colorMap"] = list(im.color_map)
        return [self._result_event(im, result, **raw)]

    def _block_response(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        events: List[UnifiedEvent] = []
        for block in im.data:
            mod_addr = block.mod_addr or 0
            if block.result is not None:
                events.append(
                    self._result_event(im, block.result, mod_addr, modId=block.mod_id, msgType=im.raw_message_type)
                )
            if block.color_map is not None:
                events.append(
                    self._event(
                        im, EventType.SYS_STATE_CHANGE, KEY_COLOR_MAP, list(block.color_map),
                        mod_addr=mod_addr, raw={"modId": block.mod_id},
                    )
                )
        return events

    # ---- device / module info ----

    @staticmethod
    def _gateway_value(device: GatewayInfo) -> Dict[str, Any]:
        value = {
            "ip": device.ip,
            "mac": device.mac,
            "model": device.model,
            "fwVer": device.fw_ver,
            "mask": device.mask,
            "gatewayIp": device.gateway_ip,
        }
        return {k: v for k, v in value.items() if v is not None}

    def _module_info_event(self, im: IntermediateMessage, module: ModuleRecord) -> UnifiedEvent:
        value: Dict[str, Any] = {"modId": module.mod_id, "uTotal": module.u_total}
        if module.fw_ver is not None:
            value["fwVer"] = module.fw_ver
        return self._event(im, EventType.SYS_DEVICE_INFO, KEY_MODULE_INFO, value, mod_addr=module.mod_addr)

    def _device_info(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        device = _require(im.device, "device", im)
        return [self._event(im, EventType.SYS_DEVICE_INFO, KEY_DEVICE_INFO, self._gateway_value(device))]

    def _module_info(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        return [self._module_info_event(im, m) for m in im.modules]

    def _init(self, im: IntermediateMessage) -> List[UnifiedEvent]:
        events: List[UnifiedEvent] = []
        if im.device is not None:
            events.append(
                self._event(im, EventType.SYS_DEVICE_INFO, KEY_DEVICE_INFO, self._gateway_value(im.device))
            )
        events.extend(self._module_info_event(im, m) for m in im.modules)
        return events
