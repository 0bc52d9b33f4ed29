from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    catalog_path: str

    # Histéresis (compartida por todos los sensores)
    samples_to_fail: int
    samples_to_heal: int

    # Periodos de los timers, en milisegundos
    evaluation_interval_ms: int
    retry_interval_ms: int
    prune_interval_ms: int

    error_retention_hours: float
    history_capacity: int

    default_vib_failure: float
    default_vib_warning: float
    default_temp_failure: float
    default_temp_warning: float

    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic_template: str

    device_db_url_template: str
    collaborator_timeout_seconds: float

    ingest_queue_size: int
    ingest_num_workers: int


def get_settings() -> Settings:
    # Carga el .env (si existe) sin pisar variables reales del entorno.
    env_file = os.getenv("MONITOR_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        catalog_path=os.getenv("CATALOG_PATH", "devices.json"),
        samples_to_fail=int(os.getenv("SAMPLES_TO_FAIL", "10")),
        samples_to_heal=int(os.getenv("SAMPLES_TO_HEAL", "20")),
        evaluation_interval_ms=int(os.getenv("EVALUATION_INTERVAL_MS", "1000")),
        retry_interval_ms=int(os.getenv("RETRY_INTERVAL_MS", "1000")),
        prune_interval_ms=int(os.getenv("PRUNE_INTERVAL_MS", "60000")),
        error_retention_hours=float(os.getenv("ERROR_RETENTION_HOURS", "12")),
        history_capacity=int(os.getenv("HISTORY_CAPACITY", "50")),
        default_vib_failure=float(os.getenv("DEFAULT_VIB_FAILURE", "4")),
        default_vib_warning=float(os.getenv("DEFAULT_VIB_WARNING", "2")),
        default_temp_failure=float(os.getenv("DEFAULT_TEMP_FAILURE", "20")),
        default_temp_warning=float(os.getenv("DEFAULT_TEMP_WARNING", "10")),
        mqtt_port=int(os.getenv("MQTT_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        # Topic IO-Link del gateway; {port} se reemplaza por el puerto.
        mqtt_topic_template=os.getenv(
            "MQTT_TOPIC_TEMPLATE",
            "balluff/cmtk/master1/iolink/devices/{port}/data/fromdevice",
        ),
        device_db_url_template=os.getenv(
            "DEVICE_DB_URL_TEMPLATE",
            "postgresql+psycopg2://cmtk@{address}:5432/telemetry",
        ),
        collaborator_timeout_seconds=float(os.getenv("COLLABORATOR_TIMEOUT_SECONDS", "5")),
        ingest_queue_size=int(os.getenv("INGEST_QUEUE_SIZE", "1000")),
        ingest_num_workers=int(os.getenv("INGEST_NUM_WORKERS", "4")),
    )
