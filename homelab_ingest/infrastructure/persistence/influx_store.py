"""Cliente de la serie temporal (InfluxDB v2).

Aísla toda interacción con InfluxDB detrás de dos operaciones:

- ``write_point``: fire-and-forget. El punto queda aceptado cuando entra al
  buffer en memoria, no cuando se persiste. Un thread de flush periódico (o
  ``flush()`` explícito) drena el buffer en lotes.
- ``query_latest``: síncrono. Los errores se propagan al caller.

Características del buffer:
- Límite configurable; descarta puntos si el buffer está lleno
- Flush automático por tiempo o al alcanzar ``buffer_size``
- Thread-safe: el callback MQTT agrega mientras el thread de flush drena
- Sin reintentos: un lote que falla se pierde (telemetría best-effort)
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Union

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from common.config import Settings
from ...core.domain.reading import MEASUREMENT, SensorType

logger = logging.getLogger(__name__)

FieldValue = Union[float, int, bool, str]


def _flux_string(value: str) -> str:
    """Escapa un valor para usarlo dentro de un literal string de Flux."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


class TimeSeriesStore:
    """Sesión de escritura con buffer + sesión de consulta sobre InfluxDB."""

    DEFAULT_BUFFER_SIZE = 500
    DEFAULT_FLUSH_INTERVAL = 5.0  # segundos
    DEFAULT_LOOKBACK = "-24h"
    SERVICE_TAG = "homelab-iot"

    def __init__(
        self,
        client: InfluxDBClient,
        bucket: str,
        org: str,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        lookback: str = DEFAULT_LOOKBACK,
        service_tag: str = SERVICE_TAG,
    ):
        """Inicializa el store.

        Args:
            client: InfluxDBClient ya configurado (url, token, org)
            bucket: Bucket destino de escrituras y consultas
            org: Organización InfluxDB
            buffer_size: Puntos por lote; el buffer admite hasta el doble
            flush_interval: Intervalo en segundos para flush periódico
            lookback: Ventana de consulta de ``query_latest`` (duración Flux)
            service_tag: Valor del tag ``service`` aplicado a todos los puntos
        """
        self._client = client
        self._bucket = bucket
        self._org = org
        self._buffer_size = buffer_size
        self._flush_interval = flush_interval
        self._lookback = lookback
        self._service_tag = service_tag

        self._write_api = client.write_api(write_options=SYNCHRONOUS)
        self._query_api = client.query_api()

        self._buffer: List[Point] = []
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._wakeup = threading.Event()
        self._flush_thread: Optional[threading.Thread] = None
        self._closed = False

        # Métricas
        self._total_buffered = 0
        self._total_flushed = 0
        self._total_dropped = 0
        self._total_failed = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "TimeSeriesStore":
        client = InfluxDBClient(
            url=settings.influx_url,
            token=settings.influx_token,
            org=settings.influx_org,
        )
        logger.info(
            "[INFLUX] Client url=%s org=%s bucket=%s",
            settings.influx_url,
            settings.influx_org,
            settings.influx_bucket,
        )
        return cls(
            client,
            bucket=settings.influx_bucket,
            org=settings.influx_org,
            buffer_size=settings.influx_batch_size,
            flush_interval=settings.influx_flush_interval,
        )

    def start(self):
        """Inicia el thread de flush periódico."""
        if self._flush_thread is not None and self._flush_thread.is_alive():
            return

        self._stop_event.clear()
        self._flush_thread = threading.Thread(
            target=self._flush_loop, name="influx-flush", daemon=True
        )
        self._flush_thread.start()
        logger.info("[INFLUX] Writer started with buffer_size=%d, flush_interval=%.1fs",
                    self._buffer_size, self._flush_interval)

    def write_point(
        self,
        measurement: str,
        tags: Mapping[str, str],
        fields: Mapping[str, FieldValue],
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Agrega un punto al buffer.

        Returns:
            True si se agregó, False si se descartó (buffer lleno o store cerrado)
        """
        point = Point(measurement).tag("service", self._service_tag)
        for key, value in tags.items():
            point.tag(key, value)
        for key, value in fields.items():
            if isinstance(value, bool) or isinstance(value, str):
                point.field(key, value)
            else:
                point.field(key, float(value))
        if timestamp is not None:
            point.time(timestamp, WritePrecision.NS)

        with self._lock:
            if self._closed:
                logger.warning("[INFLUX] Store closed, dropping point %s", measurement)
                return False

            if len(self._buffer) >= self._buffer_size * 2:
                self._total_dropped += 1
                logger.warning("[INFLUX] Buffer full, dropping point %s tags=%s",
                               measurement, dict(tags))
                return False

            self._buffer.append(point)
            self._total_buffered += 1

            if len(self._buffer) >= self._buffer_size:
                self._wakeup.set()

        return True

    def flush(self):
        """Drena el buffer completo de forma síncrona."""
        with self._flush_lock:
            while True:
                with self._lock:
                    batch = self._buffer[:self._buffer_size]
                    self._buffer = self._buffer[self._buffer_size:]
                if not batch:
                    return
                self._write_batch(batch)

    def close(self):
        """Detiene el flush periódico, drena lo pendiente y libera las sesiones."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._stop_event.set()
        self._wakeup.set()
        if self._flush_thread is not None:
            self._flush_thread.join(timeout=5.0)
            self._flush_thread = None

        self.flush()

        try:
            self._write_api.close()
            self._client.close()
        except Exception as e:
            logger.warning("[INFLUX] Error closing client: %s", e)

        logger.info("[INFLUX] Store closed. Stats: buffered=%d, flushed=%d, dropped=%d, failed=%d",
                    self._total_buffered, self._total_flushed,
                    self._total_dropped, self._total_failed)

    def _flush_loop(self):
        """Loop principal del thread de flush."""
        while not self._stop_event.is_set():
            self._wakeup.wait(self._flush_interval)
            self._wakeup.clear()
            if self._stop_event.is_set():
                break
            self.flush()

    def _write_batch(self, batch: List[Point]):
        try:
            self._write_api.write(bucket=self._bucket, org=self._org, record=batch)
            self._total_flushed += len(batch)
            logger.debug("[INFLUX] Flushed %d points", len(batch))
        except Exception as e:
            self._total_failed += len(batch)
            logger.error("[INFLUX] Write failed, %d points lost: %s", len(batch), e)

    def build_latest_query(self, device_id: str) -> str:
        return (
            f'from(bucket: "{_flux_string(self._bucket)}")\n'
            f"  |> range(start: {self._lookback})\n"
            f'  |> filter(fn: (r) => r._measurement == "{MEASUREMENT}")\n'
            f'  |> filter(fn: (r) => r.device_id == "{_flux_string(device_id)}")\n'
            f'  |> filter(fn: (r) => r._field == "value")\n'
            f"  |> last()\n"
        )

    def query_latest(self, device_id: str) -> Dict[str, float]:
        """Último valor por sensor_type dentro de la ventana de consulta.

        Returns:
            ``{"temperature": float, "humidity": float}``; cada clave está
            ausente si no hay lecturas en la ventana.

        Raises:
            Cualquier error del cliente InfluxDB (no se captura aquí).
        """
        tables = self._query_api.query(self.build_latest_query(device_id), org=self._org)

        result: Dict[str, float] = {}
        for table in tables:
            for record in table.records:
                sensor_type = SensorType.parse(str(record.values.get("sensor_type")))
                if sensor_type is None:
                    continue
                result[sensor_type.value] = float(record.get_value())
        return result

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except Exception:
            return False

    def get_stats(self) -> dict:
        """Retorna estadísticas del writer."""
        with self._lock:
            pending = len(self._buffer)

        return {
            "pending": pending,
            "total_buffered": self._total_buffered,
            "total_flushed": self._total_flushed,
            "total_dropped": self._total_dropped,
            "total_failed": self._total_failed,
            "buffer_size": self._buffer_size,
            "flush_interval": self._flush_interval,
            "closed": self._closed,
        }
