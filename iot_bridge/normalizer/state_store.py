#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import ModuleShadow, TagState

ShadowKey = Tuple[str, int]


@dataclass
class ShadowStore:
    """In-memory device shadow store

    Stores last known RFID occupancy per (device_id, mod_addr)

    Structure:
      state[(device_id, mod_addr)] -> {u_pos: TagState}

    Kept simple:
    - no history
    - no eviction
    - values are replaced whole, never mutated in place

    Readers get a read-only view of a private copy, so a caller can't corrupt
    the stored shadow. Writers doing read-modify-write must hold key_lock()
    for the key across the whole sequence.
    """

    state: Dict[ShadowKey, Dict[int, TagState]] = field(default_factory=dict)
    _locks: Dict[ShadowKey, threading.Lock] = field(default_factory=dict, repr=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def key_lock(self, device_id: str, mod_addr: int) -> threading.Lock:
        """Lock serializing updates of one module shadow"""
        key = (device_id, mod_addr)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def get(self, device_id: str, mod_addr: int) -> Optional[ModuleShadow]:
        with self._guard:
            cur = self.state.get((device_id, mod_addr))
            if cur is None:
                return None
            return MappingProxyType(dict(cur))

    def set(self, device_id: str, mod_addr: int, shadow: Mapping[int, TagState]) -> None:
        copy = dict(shadow)
        with self._guard:
            self.state[(device_id, mod_addr)] = copy

    def has(self, device_id: str, mod_addr: int) -> bool:
        with self._guard:
            return (device_id, mod_addr) in self.state

    def clear(self, device_id: str, mod_addr: int) -> None:
        with self._guard:
            self.state.pop((device_id, mod_addr), None)

    def keys(self) -> List[ShadowKey]:
        with self._guard:
            return list(self.state.keys())

    def clear_all(self) -> None:
        with self._guard:
            self.state.clear()

    def stats(self) -> Dict[str, Any]:
        """
        Example (output):
            {
              "total_modules": 1,
              "total_tags": 3,
              "modules": [{"device_id": "2437871205", "mod_addr": 1, "tag_count": 3}]
            }
        """
        with self._guard:
            modules = [
                {"device_id": dev, "mod_addr": addr, "tag_count": len(tags)}
                for (dev, addr), tags in self.state.items()
            ]
        return {
            "total_modules": len(modules),
            "total_tags": sum(m["tag_count"] for m in modules),
            "modules": modules,
        }
