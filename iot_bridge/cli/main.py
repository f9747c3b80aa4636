#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import argparse
import binascii
import json
import logging
import os
import sys
from enum import IntEnum

from iot_bridge.lib.config_loader import load_config
from iot_bridge.lib.constants import DEFAULT_CONFIG_PATH, IOT_BRIDGE_CLI_LOGGER_NAME
from iot_bridge.main import run, setup_logging
from iot_bridge.normalizer.models import DecodeFailure
from iot_bridge.normalizer.registry import CodecRegistry
from iot_bridge.normalizer.unify import UnifyNormalizer


# Exit codes for CLI
class ExitCode(IntEnum):
    # Common linux codes (0-9)
    GEN_SUCCESS = 0  # Generic success for any command
    GEN_ERROR = 1  # Unexpected errors
    INIT_ERROR = 2  # Initialization errors (bad arguments, unreadable config)

    # Decode command (10-19)
    DECODE_NO_CODEC = 10
    DECODE_FAILED = 11
    DECODE_NO_EVENTS = 12

DECODE_RESULT_PREF = "Decode result:"

logger = logging.getLogger(IOT_BRIDGE_CLI_LOGGER_NAME)
logger.setLevel(logging.INFO)


def run_bridge(config_path):
    """Run the bridge until interrupted."""
    if config_path is None and os.path.exists(DEFAULT_CONFIG_PATH):
        config_path = DEFAULT_CONFIG_PATH
    try:
        cfg = load_config(config_path).app
    except (OSError, ValueError) as e:
        logger.error("Failed to load config %r: %r", config_path, e)
        print("Failed to load config: %s" % e, file=sys.stderr)
        return ExitCode.INIT_ERROR
    setup_logging(cfg.log_level)
    try:
        run(cfg)
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.exception("Bridge stopped with error: %r", e)
        return ExitCode.GEN_ERROR
    return ExitCode.GEN_SUCCESS


def decode_payload(topic, payload, is_hex=False):
    """
    Decode and normalize one payload, print events as JSON lines.

    Every call starts from an empty shadow, so V6800 label events report
    a cache miss.
    """
    if is_hex:
        try:
            data = binascii.unhexlify("".join(payload.split()))
        except (binascii.Error, ValueError) as e:
            print("%s failed (invalid hex: %s)" % (DECODE_RESULT_PREF, e), file=sys.stderr)
            return ExitCode.INIT_ERROR
    else:
        data = payload.encode("utf-8")

    codec = CodecRegistry.default().resolve(topic)
    if codec is None:
        print("%s no codec for topic %r" % (DECODE_RESULT_PREF, topic), file=sys.stderr)
        return ExitCode.DECODE_NO_CODEC

    decoded = codec.decode(topic, data)
    if isinstance(decoded, DecodeFailure):
        print("%s failed (%s)" % (DECODE_RESULT_PREF, decoded.reason), file=sys.stderr)
        return ExitCode.DECODE_FAILED

    events = UnifyNormalizer().normalize(decoded)
    for ev in events:
        print(json.dumps(ev.to_dict(), ensure_ascii=False))
    if not events:
        print("%s no events" % DECODE_RESULT_PREF, file=sys.stderr)
        return ExitCode.DECODE_NO_EVENTS
    return ExitCode.GEN_SUCCESS


def main(argv=None):
    parser = argparse.ArgumentParser(
    prog='iot-bridge',
    description='Unified bridge for V5008 and V6800 rack monitoring gateways',
    usage='iot-bridge [-h] <command> [options]',
    add_help=False,
    epilog="""
Examples:
  iot-bridge run -c /etc/iot-bridge/config.json
  iot-bridge decode V5008Upload/2437871205/OpeAck --hex BA01EC3737BF010B01C7F8
"""
    )

    parser.add_argument(
        '-h', '--help',
        action='help',
        help='Show this help message and exit'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        title='Available commands',
        metavar='<command>          '
    )

    run_parser = subparsers.add_parser(
        'run',
        help='Run the bridge (MQTT ingress, storage, health API)'
    )
    run_parser.add_argument(
        '-c', '--config',
        default=None,
        help='Path to JSON config (default: %s if present)' % DEFAULT_CONFIG_PATH
    )

    decode_parser = subparsers.add_parser(
        'decode',
        help='Decode one payload and print unified events'
    )
    decode_parser.add_argument('topic', help='MQTT topic, e.g. V6800Upload/<deviceId>/LabelState')
    decode_parser.add_argument('payload', help='Payload text (JSON) or hex with --hex')
    decode_parser.add_argument('--hex', action='store_true', help='Payload is a hex string')

    args = parser.parse_args(argv)
    if args.command == "run":
        return int(run_bridge(args.config))
    if args.command == "decode":
        return int(decode_payload(args.topic, args.payload, args.hex))
    parser.print_help()
    return int(ExitCode.INIT_ERROR)


if __name__ == "__main__":
    sys.exit(main())
