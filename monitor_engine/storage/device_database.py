"""Acceso a la base de series temporales de cada gateway (SQLAlchemy).

Tabla esperada en cada gateway:

    port_readings(port, time, temperature, velocity_x, velocity_y, velocity_z)
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from statistics import fmean
from typing import Callable, Dict, List, Optional

from sqlalchemy import DateTime, bindparam, column, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..collaborators import AggregatePoint
from ..devices.models import Device
from ..errors import QueryError

logger = logging.getLogger(__name__)

EngineFactory = Callable[[str], Engine]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SqlDeviceDatabase:
    """DeviceDatabase sobre SQLAlchemy, un engine por dirección de gateway."""

    def __init__(
        self,
        engine_factory: EngineFactory,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._engine_factory = engine_factory
        self._clock = clock
        self._engines: Dict[str, Engine] = {}
        self._lock = threading.Lock()

    def _engine_for(self, device: Device) -> Engine:
        with self._lock:
            engine = self._engines.get(device.address)
            if engine is None:
                engine = self._engine_factory(device.address)
                self._engines[device.address] = engine
            return engine

    def list_active_ports(self, device: Device) -> List[str]:
        try:
            with self._engine_for(device).connect() as conn:
                rows = conn.execute(
                    text("SELECT DISTINCT port FROM port_readings ORDER BY port")
                ).fetchall()
        except SQLAlchemyError as e:
            logger.warning("[DEVICE_DB] list_active_ports failed device=%s: %s", device.id, e)
            raise QueryError(f"list_active_ports failed for {device.id}: {type(e).__name__}") from e

        ports = [str(row[0]) for row in rows if row[0] is not None]
        logger.info("[DEVICE_DB] Active ports device=%s ports=%s", device.id, ports)
        return ports

    def query_recent_aggregate(
        self, device: Device, port_id: str, duration_seconds: float
    ) -> List[AggregatePoint]:
        """Medias por minuto de las lecturas del puerto en la ventana pedida."""
        since = self._clock() - timedelta(seconds=float(duration_seconds))
        query = (
            text(
                """
                SELECT time, temperature, velocity_x, velocity_y, velocity_z
                FROM port_readings
                WHERE port = :port AND time > :since
                ORDER BY time
                """
            )
            .bindparams(bindparam("since", type_=DateTime()))
            .columns(
                column("time", DateTime()),
                column("temperature"),
                column("velocity_x"),
                column("velocity_y"),
                column("velocity_z"),
            )
        )
        try:
            with self._engine_for(device).connect() as conn:
                rows = conn.execute(
                    query,
                    {"port": port_id, "since": since.replace(tzinfo=None)},
                ).fetchall()
        except SQLAlchemyError as e:
            logger.warning(
                "[DEVICE_DB] query_recent_aggregate failed device=%s port=%s: %s",
                device.id, port_id, e,
            )
            raise QueryError(f"query_recent_aggregate failed for {device.id}/{port_id}") from e

        return bucket_by_minute(rows)

    def dispose(self) -> None:
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()


def _mean(values: List[Optional[float]]) -> Optional[float]:
    present = [float(v) for v in values if v is not None]
    return fmean(present) if present else None


def bucket_by_minute(rows) -> List[AggregatePoint]:
    """Agrupa filas (time, temp, vx, vy, vz) en buckets de 1 minuto.

    Los minutos sin datos no aparecen en el resultado.
    """
    buckets: Dict[datetime, List[tuple]] = {}
    for row in rows:
        ts = row[0]
        if ts is None:
            continue
        key = ts.replace(second=0, microsecond=0)
        buckets.setdefault(key, []).append(row)

    points: List[AggregatePoint] = []
    for minute in sorted(buckets):
        group = buckets[minute]
        points.append(
            AggregatePoint(
                time=minute,
                mean_temp=_mean([r[1] for r in group]),
                mean_vib_x=_mean([r[2] for r in group]),
                mean_vib_y=_mean([r[3] for r in group]),
                mean_vib_z=_mean([r[4] for r in group]),
            )
        )
    return points
