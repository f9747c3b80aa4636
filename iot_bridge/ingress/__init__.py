#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Ingress adapters

Ingress = transport side of the bridge (device gateways publish here)

Each implementation is placed into its own package under:

  iot_bridge.ingress.<name>/

Example:
  - mqtt  (paho-mqtt subscriber for <family>Upload/<deviceId>/<kind>)
"""
