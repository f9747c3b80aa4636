#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union


@dataclass(frozen=True)
class RawMessage:
    """
    Raw message produced by an ingress adapter

    This object is the adapter output BEFORE any codec is chosen

    NOTE:
      Router does NOT assume anything about payload format
      It only uses topic to pick a codec and lets the codec interpret payload

    Fields:
      - topic: transport-level address (e.g. "V5008Upload/2437871205/LabelState")
      - payload: raw payload, bytes for MQTT, str is accepted as well
      - meta: optional metadata (e.g. qos/retain for MQTT)
    """

    topic: str
    payload: Union[bytes, str, None]
    meta: Optional[Mapping[str, Any]] = None
