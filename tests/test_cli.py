#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import json

import pytest

from iot_bridge.cli.main import ExitCode, main


def test_decode_hex_prints_events(capsys):
    code = main(["decode", "V5008Upload/2437871205/OpeAck", "--hex", "BA01EC3737BF010B01C7F8"])

    assert code == ExitCode.GEN_SUCCESS
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    event = json.loads(lines[0])
    assert event["type"] == "SYS_STATE_CHANGE"
    assert event["payload"]["key"] == "door_state"
    assert event["payload"]["value"] == 1


def test_decode_json_payload(capsys):
    doc = {"msg_type": "door_state_changed_notify_req", "data": [{"host_gateway_port_index": 1, "new_state": 0}]}

    code = main(["decode", "V6800Upload/2123456789/Door", json.dumps(doc)])

    assert code == ExitCode.GEN_SUCCESS
    event = json.loads(capsys.readouterr().out)
    assert event["identity"]["modAddr"] == 1
    assert event["payload"]["value"] == 0


@pytest.mark.parametrize(
    "argv,expected",
    [
        (["decode", "wb/devices/x", "1"], ExitCode.DECODE_NO_CODEC),
        (["decode", "V5008Upload/1/OpeAck", "--hex", "BA01"], ExitCode.DECODE_FAILED),
        (["decode", "V5008Upload/1/OpeAck", "--hex", "zz"], ExitCode.INIT_ERROR),
        (["decode", "V6800Upload/1/Door", '{"data": []}'], ExitCode.DECODE_NO_EVENTS),
        ([], ExitCode.INIT_ERROR),
    ],
)
def test_decode_errors(argv, expected, capsys):
    assert main(argv) == expected


def test_run_with_unreadable_config(capsys):
    assert main(["run", "-c", "/nonexistent/iot-bridge.json"]) == ExitCode.INIT_ERROR
    assert "Failed to load config" in capsys.readouterr().err
