#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple, Union

from ..lib.constants import DeviceType
from .models import DecodeFailure, IntermediateMessage

DecodeResult = Union[IntermediateMessage, DecodeFailure]
Clock = Callable[[], str]


def utc_now_iso() -> str:
    """
    Current UTC time as ISO-8601 with milliseconds and "Z" suffix

    Example: "2025-01-01T10:00:00.000Z"
    """
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def split_topic(topic: str) -> Optional[Tuple[str, str]]:
    """
    Extract (device_id, kind) from "<family>Upload/<deviceId>/<kind>"

    Examples:
        split_topic("V5008Upload/2437871205/OpeAck") -> ("2437871205", "OpeAck")
        split_topic("V5008Upload/2437871205") -> ("2437871205", "")
        split_topic("V5008Upload") -> None
    """
    parts = topic.split("/")
    if len(parts) < 2 or not parts[1]:
        return None
    kind = parts[2] if len(parts) > 2 else ""
    return parts[1], kind


class ProtocolCodec(ABC):
    """
    Base interface for a device protocol codec

    Codec responsibilities:
      - can_handle(topic): pure predicate used by CodecRegistry
      - decode(topic, payload): raw payload -> IntermediateMessage

    Notes:
      - decode() never raises; malformed input yields DecodeFailure
      - codecs are stateless apart from the injected clock, so one instance
        can be shared by every message
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock: Clock = clock or utc_now_iso

    @property
    @abstractmethod
    def device_type(self) -> DeviceType:
        raise NotImplementedError

    @abstractmethod
    def can_handle(self, topic: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def decode(self, topic: str, payload: Any) -> DecodeResult:
        """
        Convert raw transport payload into IntermediateMessage
        """
        raise NotImplementedError
