#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import pytest

from iot_bridge.lib.constants import DeviceType
from iot_bridge.normalizer.registry import CodecRegistry
from iot_bridge.normalizer.v5008.codec import V5008Codec
from iot_bridge.normalizer.v6800.codec import V6800Codec


def test_default_registry_resolves_both_families():
    reg = CodecRegistry.default()

    assert reg.device_types() == [DeviceType.V5008, DeviceType.V6800]
    assert isinstance(reg.resolve("V5008Upload/2437871205/LabelState"), V5008Codec)
    assert isinstance(reg.resolve("V6800Upload/2123456789/LabelState"), V6800Codec)


@pytest.mark.parametrize("topic", ["", None, 42, "unknown/topic", "v5008upload/1/x"])
def test_resolve_unknown_or_invalid_topic_returns_none(topic):
    assert CodecRegistry.default().resolve(topic) is None


def test_first_registered_match_wins():
    class CatchAll(V6800Codec):
        def can_handle(self, topic: str) -> bool:
            return True

    catch_all = CatchAll()
    reg = CodecRegistry.from_codecs([catch_all, V5008Codec()])
    assert reg.resolve("V5008Upload/1/LabelState") is catch_all

    reg = CodecRegistry.from_codecs([V5008Codec(), catch_all])
    assert isinstance(reg.resolve("V5008Upload/1/LabelState"), V5008Codec)
    assert reg.resolve("anything") is catch_all


def test_register_rejects_codec_with_unknown_device_type():
    class Broken(V5008Codec):
        @property
        def device_type(self):
            return "V9999"

    with pytest.raises(ValueError, match="unsupported device_type"):
        CodecRegistry().register(Broken())
