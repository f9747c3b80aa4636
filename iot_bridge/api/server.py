#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Callable, Dict, Mapping

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from ..normalizer.base import utc_now_iso

logger = logging.getLogger(__name__)

# Returns {"app": {...}, "mqtt": {...} | None, "storage": {...} | None,
#          "pipeline": {...}, "shadow": {...}}
StatusProvider = Callable[[], Mapping[str, Any]]


def _is_healthy(status: Mapping[str, Any]) -> bool:
    mqtt = status.get("mqtt")
    if mqtt is not None and not mqtt.get("connected", False):
        return False
    storage = status.get("storage")
    if storage is not None and storage.get("connected") is False:
        return False
    return True


def create_app(status_provider: StatusProvider, *, title: str = "IoT Unified Bridge", version: str = "0.0.0") -> FastAPI:
    """
    Build the HTTP surface

      GET /        service name, version and endpoints
      GET /health  200 when ingress (and database, if any) is up, 503 otherwise
    """
    app = FastAPI(title=title, version=version)

    @app.get("/", status_code=HTTPStatus.OK)
    async def get_root() -> Dict[str, Any]:
        """Service description"""
        return {"name": title, "version": version, "endpoints": ["/", "/health"]}

    @app.get("/health")
    async def get_health() -> JSONResponse:
        """Component status"""
        status = dict(status_provider())
        healthy = _is_healthy(status)
        body = {
            "status": "ok" if healthy else "degraded",
            "timestamp": utc_now_iso(),
            "mqtt": status.get("mqtt"),
            "storage": status.get("storage"),
            "pipeline": status.get("pipeline"),
            "shadow": status.get("shadow"),
        }
        if not healthy:
            logger.debug("Health check degraded: %s", body)
        code = HTTPStatus.OK if healthy else HTTPStatus.SERVICE_UNAVAILABLE
        return JSONResponse(status_code=code, content=body)

    return app
