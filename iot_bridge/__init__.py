#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Unified bridge for V5008 / V6800 rack monitoring gateways

Layout:

  iot_bridge.ingress     transport adapters producing RawMessage (MQTT)
  iot_bridge.normalizer  codecs, shadow store and reconciliation engine
  iot_bridge.storage     persistence of unified events
  iot_bridge.api         HTTP health surface
"""
