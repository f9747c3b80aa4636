#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import struct
from typing import Any, Callable, Dict, List, Optional

from ..base import DecodeResult, ProtocolCodec, split_topic
from ..models import (
    DecodeFailure,
    GatewayInfo,
    IntermediateMessage,
    ModuleRecord,
    PowerMeta,
    SensorReading,
    TagItem,
)
from ...lib.constants import DeviceType, MessageType, ResponseResult, V5008_TOPIC_PREFIX

logger = logging.getLogger(__name__)

# Leading bytes
HEADER_HEARTBEAT = (0xCC, 0xCB)
HEADER_LABEL_STATE = 0xBB
HEADER_DOOR_STATE = 0xBA
HEADER_RESPONSE = 0xAA
HEADER_INFO = 0xEF
SUBHEADER_DEVICE_INFO = 0x01
SUBHEADER_MODULE_INFO = 0x02

MESSAGE_ID_LEN = 4

HEARTBEAT_MAX_MODULES = 10
HEARTBEAT_RECORD_LEN = 6
VALID_MOD_ADDRS = range(1, 6)

TAG_RECORD_LEN = 6
TEM_HUM_SLOTS = 6
TEM_HUM_SLOT_LEN = 5
NOISE_SLOTS = 3
NOISE_SLOT_LEN = 3
MODULE_INFO_RECORD_LEN = 5
MODEL_LEN = 4
MAC_LEN = 6

RESULT_CODE_SUCCESS = 0xA1
COLOR_QUERY_CMD = 0xE4
COLOR_QUERY_REQ_LEN = 2  # E4 + module address

# Frames without a marker byte start with the module address, the topic
# suffix is the only hint for them
_SUFFIX_TYPES = {
    "TemHum": MessageType.TEM_HUM,
    "Noise": MessageType.NOISE,
}

# Smallest well-formed frame per type, message id included
_MIN_FRAME_LEN = {
    MessageType.HEARTBEAT: 1 + MESSAGE_ID_LEN,
    MessageType.LABEL_STATE: 9 + MESSAGE_ID_LEN,
    MessageType.DOOR_STATE: 7 + MESSAGE_ID_LEN,
    MessageType.OPE_ACK: 6 + MESSAGE_ID_LEN,
    MessageType.TEM_HUM: 5 + TEM_HUM_SLOTS * TEM_HUM_SLOT_LEN + MESSAGE_ID_LEN,
    MessageType.NOISE: 5 + NOISE_SLOTS * NOISE_SLOT_LEN + MESSAGE_ID_LEN,
    MessageType.DEVICE_INFO: 22 + MAC_LEN + MESSAGE_ID_LEN,
    MessageType.MODULE_INFO: 2 + MESSAGE_ID_LEN,
}


class _FrameError(ValueError):
    pass


class _Frame:
    """
    Bounds-checked reader over a binary frame

    Every field read must end before the trailing 4-byte message id,
    otherwise _FrameError is raised.
    """

    def __init__(self, buf: bytes) -> None:
        self.buf = buf
        self.end = len(buf) - MESSAGE_ID_LEN

    def fits(self, offset: int, size: int) -> bool:
        return offset >= 0 and offset + size <= self.end

    def _check(self, offset: int, size: int) -> None:
        if not self.fits(offset, size):
            raise _FrameError(
                f"read of {size} byte(s) at offset {offset} crosses message id boundary at {self.end}"
            )

    def u8(self, offset: int) -> int:
        self._check(offset, 1)
        return self.buf[offset]

    def i8(self, offset: int) -> int:
        self._check(offset, 1)
        return struct.unpack_from(">b", self.buf, offset)[0]

    def u32(self, offset: int) -> int:
        self._check(offset, 4)
        return struct.unpack_from(">I", self.buf, offset)[0]

    def hex(self, offset: int, size: int) -> str:
        self._check(offset, size)
        return self.buf[offset:offset + size].hex().upper()

    def ascii(self, offset: int, size: int) -> str:
        self._check(offset, size)
        return self.buf[offset:offset + size].decode("ascii", errors="replace").rstrip("\x00")

    def ipv4(self, offset: int) -> str:
        self._check(offset, 4)
        return ".".join(str(b) for b in self.buf[offset:offset + 4])

    def mac(self, offset: int) -> str:
        self._check(offset, MAC_LEN)
        return ":".join(f"{b:02X}" for b in self.buf[offset:offset + MAC_LEN])

    def signed_decimal(self, offset: int) -> Optional[float]:
        """
        Read (signed integer byte, unsigned hundredths byte)

        Examples:
            1C 30 -> 28.48
            F6 32 -> -10.5
            00 00 -> None (slot unused)
        """
        int_part = self.i8(offset)
        frac_part = self.u8(offset + 1)
        if int_part == 0 and frac_part == 0:
            return None
        value = round(abs(int_part) + frac_part / 100.0, 2)
        return -value if int_part < 0 else value

    def message_id(self) -> str:
        return str(struct.unpack_from(">I", self.buf, self.end)[0])


class V5008Codec(ProtocolCodec):
    """
    Codec for V5008 binary frames

    Dispatch is by leading byte; the topic suffix is only a fallback for
    frames without a marker (TemHum, Noise):

      CC/CB  heartbeat         BB  label state (full tag snapshot)
      BA     door state        AA  operation response
      EF01   device info       EF02 module info

    The last 4 bytes of every frame are the message id (big-endian u32).
    """

    def __init__(self, clock=None) -> None:
        super().__init__(clock)
        self._parsers: Dict[MessageType, Callable[[_Frame], Dict[str, Any]]] = {
            MessageType.HEARTBEAT: self._parse_heartbeat,
            MessageType.LABEL_STATE: self._parse_label_state,
            MessageType.DOOR_STATE: self._parse_door_state,
            MessageType.OPE_ACK: self._parse_response,
            MessageType.TEM_HUM: self._parse_tem_hum,
            MessageType.NOISE: self._parse_noise,
            MessageType.DEVICE_INFO: self._parse_device_info,
            MessageType.MODULE_INFO: self._parse_module_info,
        }

    @property
    def device_type(self) -> DeviceType:
        return DeviceType.V5008

    def can_handle(self, topic: str) -> bool:
        return isinstance(topic, str) and topic.startswith(V5008_TOPIC_PREFIX)

    def decode(self, topic: str, payload: Any) -> DecodeResult:
        parts = split_topic(topic) if isinstance(topic, str) else None
        if parts is None:
            return DecodeFailure(topic=str(topic), reason="topic carries no device id")
        device_id, kind = parts

        if not isinstance(payload, (bytes, bytearray, memoryview)):
            return DecodeFailure(topic=topic, reason=f"expected binary payload, got {type(payload).__name__}")
        buf = bytes(payload)

        message_type = self._detect_type(buf, kind)
        if message_type is None:
            head = f"0x{buf[0]:02X}" if buf else "<empty>"
            return DecodeFailure(topic=topic, reason=f"unrecognized header {head} and topic suffix {kind!r}")

        min_len = _MIN_FRAME_LEN[message_type]
        if len(buf) < min_len:
            return DecodeFailure(
                topic=topic,
                reason=f"{message_type.value} frame too short: {len(buf)} < {min_len} bytes",
            )

        frame = _Frame(buf)
        try:
            fields = self._parsers[message_type](frame)
        except _FrameError as e:
            return DecodeFailure(topic=topic, reason=f"malformed {message_type.value} frame: {e}")

        logger.debug("V5008 %s decoded: device=%s bytes=%d", message_type.value, device_id, len(buf))
        return IntermediateMessage(
            topic=topic,
            device_id=device_id,
            device_type=DeviceType.V5008,
            message_type=message_type,
            message_id=frame.message_id(),
            ts=self._clock(),
            raw_message_type=kind,
            message=buf.hex().upper(),
            **fields,
        )

    @staticmethod
    def _detect_type(buf: bytes, kind: str) -> Optional[MessageType]:
        if buf:
            head = buf[0]
            if head in HEADER_HEARTBEAT:
                return MessageType.HEARTBEAT
            if head == HEADER_LABEL_STATE:
                return MessageType.LABEL_STATE
            if head == HEADER_DOOR_STATE:
                return MessageType.DOOR_STATE
            if head == HEADER_RESPONSE:
                return MessageType.OPE_ACK
            if head == HEADER_INFO and len(buf) >= 2:
                if buf[1] == SUBHEADER_DEVICE_INFO:
                    return MessageType.DEVICE_INFO
                if buf[1] == SUBHEADER_MODULE_INFO:
                    return MessageType.MODULE_INFO
        return _SUFFIX_TYPES.get(kind)

    # ---- per-type parsers ----

    def _parse_heartbeat(self, frame: _Frame) -> Dict[str, Any]:
        # CC | 10 x (addr:1 modId:4 uTotal:1) | msgId:4
        modules: List[ModuleRecord] = []
        offset = 1
        for _ in range(HEARTBEAT_MAX_MODULES):
            if not frame.fits(offset, HEARTBEAT_RECORD_LEN):
                break
            mod_addr = frame.u8(offset)
            mod_id = frame.u32(offset + 1)
            u_total = frame.u8(offset + 5)
            offset += HEARTBEAT_RECORD_LEN
            # empty ports report a zero module id
            if mod_addr not in VALID_MOD_ADDRS or mod_id == 0:
                continue
            modules.append(ModuleRecord(mod_addr=mod_addr, mod_id=str(mod_id), u_total=u_total))

        # no power readings in this frame
        meta = PowerMeta(main_power=True, backup_power=False)
        return {"modules": tuple(modules), "meta": meta}

    def _parse_label_state(self, frame: _Frame) -> Dict[str, Any]:
        # BB | addr:1 modId:4 reserved:1 uTotal:1 online:1 | online x (uPos:1 alarm:1 tag:4) | msgId:4
        mod_addr = frame.u8(1)
        mod_id = frame.u32(2)
        u_total = frame.u8(7)
        online_count = frame.u8(8)

        items: List[TagItem] = []
        offset = 9
        for _ in range(online_count):
            if not frame.fits(offset, TAG_RECORD_LEN):
                logger.warning(
                    "V5008 label state: online count %d exceeds frame, kept %d tag(s)",
                    online_count,
                    len(items),
                )
                break
            items.append(
                TagItem(
                    u_pos=frame.u8(offset),
                    alarm_status=frame.u8(offset + 1),
                    tag_id=frame.hex(offset + 2, 4),
                )
            )
            offset += TAG_RECORD_LEN

        return {
            "mod_addr": mod_addr,
            "mod_id": str(mod_id),
            "u_total": u_total,
            "online_count": online_count,
            "items": tuple(items),
        }

    def _parse_door_state(self, frame: _Frame) -> Dict[str, Any]:
        # BA | addr:1 modId:4 state:1 | msgId:4
        return {
            "mod_addr": frame.u8(1),
            "mod_id": str(frame.u32(2)),
            "door_state": f"{frame.u8(6):02x}",
        }

    def _parse_tem_hum(self, frame: _Frame) -> Dict[str, Any]:
        # addr:1 modId:4 | 6 x (sensorAddr:1 temp:2 hum:2) | msgId:4
        sensors: List[SensorReading] = []
        offset = 5
        for _ in range(TEM_HUM_SLOTS):
            sensors.append(
                SensorReading(
                    sensor_addr=frame.u8(offset),
                    temp=frame.signed_decimal(offset + 1),
                    hum=frame.signed_decimal(offset + 3),
                )
            )
            offset += TEM_HUM_SLOT_LEN
        return {"mod_addr": frame.u8(0), "mod_id": str(frame.u32(1)), "sensors": tuple(sensors)}

    def _parse_noise(self, frame: _Frame) -> Dict[str, Any]:
        # addr:1 modId:4 | 3 x (sensorAddr:1 noise:2) | msgId:4
        sensors: List[SensorReading] = []
        offset = 5
        for _ in range(NOISE_SLOTS):
            sensors.append(
                SensorReading(
                    sensor_addr=frame.u8(offset),
                    noise=frame.signed_decimal(offset + 1),
                )
            )
            offset += NOISE_SLOT_LEN
        return {"mod_addr": frame.u8(0), "mod_id": str(frame.u32(1)), "sensors": tuple(sensors)}

    def _parse_response(self, frame: _Frame) -> Dict[str, Any]:
        # AA | deviceId:4 result:1 | echoed request [+ colors] | msgId:4
        reported_device_id = frame.u32(1)
        result = ResponseResult.SUCCESS if frame.u8(5) == RESULT_CODE_SUCCESS else ResponseResult.FAILURE

        req_offset = 6
        req_len = frame.end - req_offset
        color_map = None
        if req_len > 0 and frame.u8(req_offset) == COLOR_QUERY_CMD:
            # color query: E4 <addr> followed by one color code per u position
            req_len = min(COLOR_QUERY_REQ_LEN, req_len)
            color_map = tuple(frame.u8(o) for o in range(req_offset + req_len, frame.end))

        return {
            "reported_device_id": str(reported_device_id),
            "result": result,
            "original_req": frame.hex(req_offset, req_len),
            "color_map": color_map,
        }

    def _parse_device_info(self, frame: _Frame) -> Dict[str, Any]:
        # EF 01 | model:4 fw:4 ip:4 mask:4 gateway:4 mac:6 | msgId:4
        device = GatewayInfo(
            model=frame.ascii(2, MODEL_LEN),
            fw_ver=str(frame.u32(6)),
            ip=frame.ipv4(10),
            mask=frame.ipv4(14),
            gateway_ip=frame.ipv4(18),
            mac=frame.mac(22),
        )
        return {"device": device}

    def _parse_module_info(self, frame: _Frame) -> Dict[str, Any]:
        # EF 02 | n x (addr:1 fw:4) | msgId:4
        modules: List[ModuleRecord] = []
        offset = 2
        while frame.fits(offset, MODULE_INFO_RECORD_LEN):
            modules.append(ModuleRecord(mod_addr=frame.u8(offset), fw_ver=str(frame.u32(offset + 1))))
            offset += MODULE_INFO_RECORD_LEN
        return {"modules": tuple(modules)}
