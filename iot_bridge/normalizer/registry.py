#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..lib.constants import DeviceType
from .base import ProtocolCodec
from .v5008.codec import V5008Codec
from .v6800.codec import V6800Codec

logger = logging.getLogger(__name__)


@dataclass
class CodecRegistry:
    """
    Ordered list of protocol codecs with topic based lookup

    Lookup walks codecs in registration order and returns the first one whose
    can_handle(topic) is true, so registration order is the precedence policy
    when prefixes overlap.

    Example usage:

      reg = CodecRegistry.default()
      codec = reg.resolve("V5008Upload/2437871205/OpeAck")
      # codec.device_type == DeviceType.V5008

      reg.resolve("unknown/topic")   # -> None
      reg.resolve("")                # -> None
    """

    codecs: List[ProtocolCodec] = field(default_factory=list)

    @classmethod
    def default(cls, clock=None) -> "CodecRegistry":
        """Registry with both supported families, V5008 first"""
        return cls.from_codecs([V5008Codec(clock=clock), V6800Codec(clock=clock)])

    @classmethod
    def from_codecs(cls, codecs: Iterable[ProtocolCodec]) -> "CodecRegistry":
        reg = cls()
        for c in codecs:
            reg.register(c)
        return reg

    def register(self, codec: ProtocolCodec) -> None:
        if not isinstance(codec.device_type, DeviceType):
            raise ValueError(f"Codec {codec!r} reports unsupported device_type={codec.device_type!r}")
        self.codecs.append(codec)
        logger.debug("Codec registered: %s (%s)", type(codec).__name__, codec.device_type.value)

    def resolve(self, topic: str) -> Optional[ProtocolCodec]:
        if not topic or not isinstance(topic, str):
            return None
        for codec in self.codecs:
            if codec.can_handle(topic):
                return codec
        return None

    def device_types(self) -> List[DeviceType]:
        return [c.device_type for c in self.codecs]
