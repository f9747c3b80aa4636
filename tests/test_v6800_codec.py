#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import json

import pytest

from iot_bridge.lib.constants import DeviceType, MessageType
from iot_bridge.normalizer.models import DecodeFailure, IntermediateMessage, ModuleRecord
from iot_bridge.normalizer.v6800.codec import V6800Codec, infer_rfid_action

TS = "2025-01-01T10:00:00.000Z"
DEVICE = "2123456789"

LABEL_STATE = {
    "msg_type": "u_state_changed_notify_req",
    "gateway_sn": DEVICE,
    "uuid_number": 727046823,
    "data": [
        {
            "host_gateway_port_index": 2,
            "extend_module_sn": "3963041727",
            "u_data": [
                {"u_index": 3, "new_state": 1, "old_state": 0, "tag_code": "DD23B0B4", "warning": 0},
                {"u_index": 1, "new_state": 0, "old_state": 1, "tag_code": "DD395064", "warning": 0},
            ],
        }
    ],
}

HEARTBEAT = {
    "msg_type": "heart_beat_req",
    "module_type": "mt_gw",
    "module_sn": DEVICE,
    "bus_V": "23.89",
    "bus_I": "5.70",
    "main_power": 1,
    "backup_power": 0,
    "uuid_number": 1534195387,
    "data": [
        {"module_index": 2, "module_sn": "3963041727", "module_m_num": 1, "module_u_num": 6},
        {"module_index": 4, "module_sn": "2349402517", "module_m_num": 2, "module_u_num": 12},
    ],
}

TEM_HUM = {
    "msg_type": "temper_humidity_exception_nofity_req",
    "gateway_sn": DEVICE,
    "uuid_number": 685205293,
    "data": [
        {
            "host_gateway_port_index": 2,
            "extend_module_sn": "3963041727",
            "th_data": [
                {"temper_position": 10, "temper_swot": 28.79, "hygrometer_swot": 53.79},
                {"temper_position": 12, "temper_swot": 0, "hygrometer_swot": 0},
                {"temper_position": 13, "temper_swot": "n/a"},
            ],
        }
    ],
}

INIT = {
    "msg_type": "devies_init_req",
    "gateway_ip": "192.168.0.212",
    "gateway_mac": "08:80:7E:91:61:15",
    "uuid_number": 797991388,
    "data": [
        {"module_index": 2, "module_sn": "3963041727", "module_u_num": 6, "module_sw_version": "2307101644"},
        {"module_index": 4, "module_sn": "2349402517", "module_u_num": 12, "module_sw_version": "2307101644"},
    ],
}


def _codec() -> V6800Codec:
    return V6800Codec(clock=lambda: TS)


def _decode(kind: str, doc):
    payload = json.dumps(doc) if not isinstance(doc, (str, bytes)) else doc
    return _codec().decode(f"V6800Upload/{DEVICE}/{kind}", payload)


@pytest.mark.parametrize(
    "old,new,expected",
    [
        (0, 1, "attached"),
        (1, 0, "detached"),
        (1, 1, None),
        (0, 0, None),
        (None, 1, None),
        (2, 0, None),
        (False, True, None),
        (True, False, None),
    ],
)
def test_infer_rfid_action(old, new, expected):
    assert infer_rfid_action(old, new) == expected


def test_can_handle_by_prefix():
    codec = _codec()
    assert codec.device_type == DeviceType.V6800
    assert codec.can_handle("V6800Upload/1/HeartBeat")
    assert not codec.can_handle("V5008Upload/1/HeartBeat")


def test_label_state_actions():
    im = _decode("LabelState", LABEL_STATE)

    assert isinstance(im, IntermediateMessage)
    assert im.device_type == DeviceType.V6800
    assert im.device_id == DEVICE
    assert im.message_type == MessageType.LABEL_STATE
    assert im.raw_message_type == "u_state_changed_notify_req"
    assert im.message_id == "727046823"
    assert im.ts == TS

    assert len(im.data) == 1
    block = im.data[0]
    assert block.mod_addr == 2
    assert block.mod_id == "3963041727"
    assert [(i.u_pos, i.tag_id, i.action) for i in block.items] == [
        (3, "DD23B0B4", "attached"),
        (1, "DD395064", "detached"),
    ]


def test_label_state_unchanged_flags_keep_item_without_action():
    doc = {
        "uuid_number": 1,
        "data": [
            {
                "host_gateway_port_index": 1,
                "extend_module_sn": "1",
                "u_data": [{"u_index": 5, "new_state": 1, "old_state": 1, "tag_code": "AA", "warning": 0}],
            }
        ],
    }
    im = _decode("LabelState", doc)

    item = im.data[0].items[0]
    assert item.u_pos == 5
    assert item.action is None


def test_heartbeat():
    im = _decode("HeartBeat", HEARTBEAT)

    assert im.message_type == MessageType.HEARTBEAT
    assert im.raw_message_type == "heart_beat_req"
    assert im.message_id == "1534195387"
    assert im.meta.voltage == 23.89
    assert im.meta.current == 5.70
    assert im.meta.main_power is True
    assert im.meta.backup_power is False
    assert im.modules == (
        ModuleRecord(mod_addr=2, mod_id="3963041727", u_total=6),
        ModuleRecord(mod_addr=4, mod_id="2349402517", u_total=12),
    )


def test_tem_hum_zero_is_a_value_and_garbage_is_none():
    im = _decode("TemHum", TEM_HUM)

    sensors = im.data[0].sensors
    assert [(s.sensor_addr, s.temp, s.hum) for s in sensors] == [
        (10, 28.79, 53.79),
        (12, 0.0, 0.0),
        (13, None, None),
    ]
    assert im.data[0].mod_addr == 2


def test_door_state():
    doc = {
        "msg_type": "door_state_changed_notify_req",
        "uuid_number": 123,
        "data": [
            {"host_gateway_port_index": 2, "extend_module_sn": "3963041727", "new_state": 1},
            {"host_gateway_port_index": 3, "extend_module_sn": "1", "new_state": 0},
            {"host_gateway_port_index": 4, "extend_module_sn": "2"},
        ],
    }
    im = _decode("Door", doc)

    assert im.message_type == MessageType.DOOR_STATE
    assert [b.door_state for b in im.data] == ["01", "00", None]


def test_init_keeps_gateway_and_modules_together():
    im = _decode("Init", INIT)

    assert im.message_type == MessageType.INIT
    assert im.device.ip == "192.168.0.212"
    assert im.device.mac == "08:80:7E:91:61:15"
    assert im.modules == (
        ModuleRecord(mod_addr=2, mod_id="3963041727", u_total=6, fw_ver="2307101644"),
        ModuleRecord(mod_addr=4, mod_id="2349402517", u_total=12, fw_ver="2307101644"),
    )


def test_ope_ack_color_query():
    doc = {
        "msg_type": "u_color",
        "code": 1346589,
        "data": [{"index": 2, "module_id": "3963041727", "color_data": [{"index": 1, "code": 0}, {"index": 2, "code": 13}]}],
    }
    im = _decode("OpeAck", doc)

    assert im.message_type == MessageType.OPE_ACK
    assert im.message_id == "1346589"
    assert im.data[0].mod_addr == 2
    assert im.data[0].color_map == (0, 13)
    assert im.data[0].result is None


@pytest.mark.parametrize(
    "msg_type,block,expected",
    [
        ("set_module_property_result_req", {"set_property_result": 0}, "Success"),
        ("set_module_property_result_req", {"set_property_result": 1}, "Failure"),
        ("clear_u_warning", {"ctr_flag": True}, "Success"),
        ("clear_u_warning", {"ctr_flag": False}, "Failure"),
    ],
)
def test_ope_ack_results(msg_type, block, expected):
    doc = {"msg_type": msg_type, "uuid_number": 9, "data": [{"host_gateway_port_index": 1, **block}]}
    im = _decode("OpeAck", doc)

    assert im.data[0].result == expected
    assert im.raw_message_type == msg_type


def test_bytes_payload_accepted():
    im = _codec().decode(f"V6800Upload/{DEVICE}/HeartBeat", json.dumps(HEARTBEAT).encode("utf-8"))
    assert isinstance(im, IntermediateMessage)


@pytest.mark.parametrize(
    "kind,payload",
    [
        ("LabelState", "{not json"),
        ("LabelState", "[1, 2]"),
        ("Unknown", json.dumps(LABEL_STATE)),
        ("LabelState", b"\xff\xfe"),
    ],
)
def test_malformed_documents_yield_decode_failure(kind, payload):
    res = _decode(kind, payload)
    assert isinstance(res, DecodeFailure)
    assert res.reason


def test_out_of_range_numbers_are_dropped_not_raised():
    doc = (
        '{"uuid_number": 1e400, "data": [{"host_gateway_port_index": Infinity, "u_data": []},'
        ' {"host_gateway_port_index": 2, "u_data": ['
        '{"u_index": 1e400, "new_state": 1, "old_state": 0, "tag_code": "AA"},'
        '{"u_index": 4, "new_state": 1, "old_state": 0, "tag_code": "BB", "warning": -1e400}]}]}'
    )

    im = _decode("LabelState", doc)

    assert isinstance(im, IntermediateMessage)
    assert im.message_id == ""
    assert im.data[0].mod_addr is None
    assert [(i.u_pos, i.tag_id, i.alarm_status) for i in im.data[1].items] == [(4, "BB", 0)]


@pytest.mark.parametrize(
    "uuid_number,expected",
    [
        (727046823, "727046823"),
        (123.0, "123"),
        ("abc-1", "abc-1"),
    ],
)
def test_message_id_is_decimal_string(uuid_number, expected):
    doc = dict(HEARTBEAT, uuid_number=uuid_number)
    assert _decode("HeartBeat", doc).message_id == expected
