#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Protocol codecs and the reconciliation engine

Each device family has its own codec package:

  iot_bridge.normalizer.<family>/

  - v5008  (binary frames, full tag snapshots)
  - v6800  (JSON documents, attach/detach events)

Both produce IntermediateMessage; UnifyNormalizer turns it into UnifiedEvent
lists against the ShadowStore.
"""
