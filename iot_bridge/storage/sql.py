#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    select,
    text,
)
from sqlalchemy.engine import Engine

from .base import EventSink, Row
from .records import DEVICE_STATE_KEY

logger = logging.getLogger(__name__)

metadata = MetaData()

# BigInteger ids fall back to Integer on SQLite so autoincrement keeps working
_ID = BigInteger().with_variant(Integer(), "sqlite")

telemetry_table = Table(
    "iot_telemetry",
    metadata,
    Column("id", _ID, primary_key=True, autoincrement=True),
    Column("device_id", String(50), nullable=False, index=True),
    Column("device_type", String(20), nullable=False),
    Column("mod_addr", Integer, nullable=False, default=0),
    Column("sensor_addr", Integer, nullable=False, default=0),
    Column("telemetry_key", String(50), nullable=False, index=True),
    Column("telemetry_value", Float, nullable=False),
    Column("timestamp", String(30), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

rfid_events_table = Table(
    "iot_rfid_events",
    metadata,
    Column("id", _ID, primary_key=True, autoincrement=True),
    Column("device_id", String(50), nullable=False, index=True),
    Column("device_type", String(20), nullable=False),
    Column("mod_addr", Integer, nullable=False, default=0),
    Column("sensor_addr", Integer, nullable=False, default=0),
    Column("tag_id", String(32)),
    Column("action", String(16), nullable=False),
    Column("timestamp", String(30), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

device_state_table = Table(
    "iot_device_state",
    metadata,
    Column("id", _ID, primary_key=True, autoincrement=True),
    Column("device_id", String(50), nullable=False),
    Column("device_type", String(20), nullable=False),
    Column("mod_addr", Integer, nullable=False, default=0),
    Column("sensor_addr", Integer, nullable=False, default=0),
    Column("state_type", String(50), nullable=False),
    Column("json_value", Text, nullable=False),
    Column("timestamp", String(30), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint(*DEVICE_STATE_KEY, name="uk_device_state"),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SqlSink(EventSink):
    """
    Writes rows to a relational database with SQLAlchemy Core

    Tables are created on start when missing. Each call runs in one
    transaction. The device state upsert is select-then-update so it works on
    every backend SQLAlchemy supports.
    """

    def __init__(self, url: Optional[str] = None, *, engine: Optional[Engine] = None) -> None:
        if engine is None:
            if not url:
                raise ValueError("SqlSink needs a database url or an engine")
            engine = create_engine(url, pool_pre_ping=True, future=True)
        self._engine = engine

    @property
    def sink_name(self) -> str:
        return "sql"

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        logger.info("Ensuring event tables exist: dialect=%s", self._engine.dialect.name)
        metadata.create_all(self._engine)

    def ping(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database ping failed")
            return False

    def insert_telemetry(self, rows: Sequence[Row]) -> None:
        created = _now()
        with self._engine.begin() as conn:
            conn.execute(telemetry_table.insert(), [{**r, "created_at": created} for r in rows])
        logger.debug("Inserted %d telemetry rows", len(rows))

    def insert_rfid_events(self, rows: Sequence[Row]) -> None:
        created = _now()
        with self._engine.begin() as conn:
            conn.execute(rfid_events_table.insert(), [{**r, "created_at": created} for r in rows])
        logger.debug("Inserted %d RFID event rows", len(rows))

    def upsert_device_state(self, rows: Sequence[Row]) -> None:
        t = device_state_table
        now = _now()
        with self._engine.begin() as conn:
            for r in rows:
                match = and_(*(t.c[k] == r[k] for k in DEVICE_STATE_KEY))
                existing = conn.execute(select(t.c.id).where(match)).first()
                if existing is None:
                    conn.execute(t.insert().values(**r, created_at=now, updated_at=now))
                else:
                    conn.execute(
                        t.update()
                        .where(t.c.id == existing.id)
                        .values(json_value=r["json_value"], timestamp=r["timestamp"], updated_at=now)
                    )
        logger.debug("Upserted %d device state rows", len(rows))

    def status(self) -> Dict[str, Any]:
        return {"sink": self.sink_name, "dialect": self._engine.dialect.name, "connected": self.ping()}

    def close(self) -> None:
        self._engine.dispose()
