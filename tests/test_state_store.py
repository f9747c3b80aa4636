#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import threading

import pytest

from iot_bridge.normalizer.models import TagState
from iot_bridge.normalizer.state_store import ShadowStore


def test_get_absent_returns_none():
    store = ShadowStore()
    assert store.get("dev1", 1) is None
    assert not store.has("dev1", 1)


def test_set_copies_and_get_is_read_only():
    store = ShadowStore()
    shadow = {3: TagState("AA"), 5: TagState("BB", 1)}
    store.set("dev1", 1, shadow)

    # caller mutation after set does not leak into the store
    shadow[7] = TagState("CC")
    got = store.get("dev1", 1)
    assert dict(got) == {3: TagState("AA"), 5: TagState("BB", 1)}

    with pytest.raises(TypeError):
        got[9] = TagState("DD")  # type: ignore[index]


def test_empty_shadow_is_present():
    store = ShadowStore()
    store.set("dev1", 1, {})
    assert store.has("dev1", 1)
    assert store.get("dev1", 1) == {}


def test_clear_keys_and_clear_all():
    store = ShadowStore()
    store.set("dev1", 1, {1: TagState("A")})
    store.set("dev1", 2, {})
    store.set("dev2", 1, {})

    assert sorted(store.keys()) == [("dev1", 1), ("dev1", 2), ("dev2", 1)]

    store.clear("dev1", 2)
    store.clear("missing", 9)
    assert sorted(store.keys()) == [("dev1", 1), ("dev2", 1)]

    store.clear_all()
    assert store.keys() == []


def test_stats():
    store = ShadowStore()
    store.set("dev1", 1, {1: TagState("A"), 2: TagState("B")})
    store.set("dev1", 2, {3: TagState("C")})

    stats = store.stats()
    assert stats["total_modules"] == 2
    assert stats["total_tags"] == 3
    assert {"device_id": "dev1", "mod_addr": 2, "tag_count": 1} in stats["modules"]


def test_key_lock_is_per_key():
    store = ShadowStore()
    assert store.key_lock("dev1", 1) is store.key_lock("dev1", 1)
    assert store.key_lock("dev1", 1) is not store.key_lock("dev1", 2)


def test_key_lock_serializes_read_modify_write():
    store = ShadowStore()
    store.set("dev1", 1, {})

    def worker(base: int) -> None:
        for i in range(200):
            with store.key_lock("dev1", 1):
                cur = dict(store.get("dev1", 1))
                cur[base + i] = TagState(str(base + i))
                store.set("dev1", 1, cur)

    threads = [threading.Thread(target=worker, args=(n * 1000,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.get("dev1", 1)) == 800
