#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from .models import RawMessage

RawMessageHandler = Callable[[RawMessage], None]


class IngressAdapter(ABC):
    """
    Base interface for an ingress adapter

    Adapter responsibilities:
      - start(handler): adapter begins receiving messages from a transport
          and passes every one of them to handler as RawMessage
      - stop(): cleanup, safe to call more than once
      - stats(): connection state and counters for the health endpoint

    Adapters only receive. Nothing is ever sent back to devices.
    """

    @property
    @abstractmethod
    def ingress_name(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def start(self, handler: RawMessageHandler) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> Dict[str, Any]:
        raise NotImplementedError
