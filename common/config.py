from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    mqtt_broker: str
    mqtt_topic: str
    mqtt_username: str | None
    mqtt_password: str | None
    mqtt_connect_timeout: float
    mqtt_reconnect_period: float

    influx_url: str
    influx_token: str
    influx_org: str
    influx_bucket: str
    influx_flush_interval: float
    influx_batch_size: int

    log_dir: str
    port: int

    @property
    def mqtt_host(self) -> str:
        return urlparse(self.mqtt_broker).hostname or "localhost"

    @property
    def mqtt_port(self) -> int:
        return urlparse(self.mqtt_broker).port or 1883


def _ms_to_seconds(name: str, default: str) -> float:
    return int(os.getenv(name, default)) / 1000.0


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("HOMELAB_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        mqtt_broker=os.getenv("MQTT_BROKER", "mqtt://mqtt-broker-local:1883"),
        mqtt_topic=os.getenv("MQTT_TOPIC", "#"),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_connect_timeout=_ms_to_seconds("MQTT_CONNECT_TIMEOUT_MS", "4000"),
        mqtt_reconnect_period=_ms_to_seconds("MQTT_RECONNECT_PERIOD_MS", "1000"),
        influx_url=os.getenv("INFLUXDB_URL", "http://localhost:8086"),
        influx_token=os.getenv("INFLUXDB_TOKEN", ""),
        influx_org=os.getenv("INFLUXDB_ORG", "homelab"),
        influx_bucket=os.getenv("INFLUXDB_BUCKET", "iot_data"),
        influx_flush_interval=_ms_to_seconds("INFLUX_FLUSH_INTERVAL_MS", "5000"),
        influx_batch_size=int(os.getenv("INFLUX_BATCH_SIZE", "500")),
        log_dir=os.getenv("LOG_DIR", "logs"),
        port=int(os.getenv("PORT", "3000")),
    )
