"""Health checks del sistema."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..transport.mqtt_client import MQTTClient
    from ...infrastructure.persistence.influx_store import TimeSeriesStore


@dataclass
class HealthStatus:
    """Estado de salud del sistema."""
    healthy: bool
    mqtt_state: str
    mqtt_connected: bool
    influx_connected: bool
    messages_processed: int
    messages_failed: int
    points_pending: int

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "mqtt": {
                "state": self.mqtt_state,
                "connected": self.mqtt_connected,
            },
            "influxdb": {
                "connected": self.influx_connected,
                "pending": self.points_pending,
            },
            "messages_processed": self.messages_processed,
            "messages_failed": self.messages_failed,
        }


class HealthChecker:
    """Verifica el estado de salud del sistema."""

    def __init__(
        self,
        mqtt_client: Optional["MQTTClient"] = None,
        store: Optional["TimeSeriesStore"] = None,
    ):
        self._mqtt = mqtt_client
        self._store = store

    def check_influx(self) -> bool:
        """Verifica conexión a InfluxDB."""
        if not self._store:
            return False
        return self._store.ping()

    def get_status(self) -> HealthStatus:
        """Obtiene estado de salud completo."""
        influx_ok = self.check_influx()
        mqtt_ok = self._mqtt.is_connected if self._mqtt else False
        state = self._mqtt.state.value if self._mqtt else "disconnected"
        stats = self._mqtt.stats if self._mqtt else None
        pending = self._store.get_stats()["pending"] if self._store else 0

        return HealthStatus(
            healthy=mqtt_ok and influx_ok,
            mqtt_state=state,
            mqtt_connected=mqtt_ok,
            influx_connected=influx_ok,
            messages_processed=stats.processed if stats else 0,
            messages_failed=stats.failed if stats else 0,
            points_pending=pending,
        )
