"""Handler de mensajes MQTT."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from common.log_sink import MqttLogSink
from ..classification.classifier import classify
from ..domain.payload import DecodedPayload, PayloadDecodeError, decode_text, parse_payload
from ..domain.reading import MEASUREMENT, SensorReading
from ..monitoring.stats import Stats
from ...infrastructure.persistence.influx_store import TimeSeriesStore

logger = logging.getLogger(__name__)

Classifier = Callable[[str, DecodedPayload], Optional[SensorReading]]


class MessageHandler:
    """Maneja mensajes MQTT: decode → classify → write.

    Responsabilidades:
    - Decodificación UTF-8 y parseo JSON (con fallback a texto plano)
    - Delegación al clasificador
    - Escritura de lecturas aceptadas en el store (fire-and-forget)
    - Tracking de estadísticas

    Nunca propaga excepciones: un payload malformado no debe tumbar la
    suscripción.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        log_sink: Optional[MqttLogSink] = None,
        classifier: Classifier = classify,
    ):
        self._store = store
        self._sink = log_sink
        self._classify = classifier
        self._stats = Stats()

    def handle(self, topic: str, payload: bytes) -> Optional[SensorReading]:
        """Procesa un mensaje MQTT.

        Returns:
            La lectura aceptada por el store, o None si se ignoró o falló
        """
        self._stats.incr("received")
        self._stats.last_message_at = time.time()

        try:
            # 1. Decodificar
            try:
                message = decode_text(payload)
            except PayloadDecodeError as e:
                logger.error("[HANDLER] Undecodable payload on %s: %s", topic, e)
                self._sink_error(f"Error processing MQTT message on {topic}", e)
                self._stats.incr("failed")
                return None

            # 2. Parsear (JSON o texto plano, ambos válidos)
            decoded = parse_payload(message)
            logger.debug("[HANDLER] Received: topic=%s payload=%r", topic, decoded)
            if self._sink is not None:
                self._sink.info(f"MQTT message received - Topic: {topic} - Payload: {message}")

            # 3. Clasificar
            reading = self._classify(topic, decoded)
            if reading is None:
                self._stats.incr("ignored")
                return None

            # 4. Escribir
            return self._store_reading(reading)

        except Exception as e:
            logger.exception("[HANDLER] Error: %s", e)
            self._sink_error(f"Error processing MQTT message on {topic}", e)
            self._stats.incr("failed")
            return None

    def _store_reading(self, reading: SensorReading) -> Optional[SensorReading]:
        accepted = self._store.write_point(
            MEASUREMENT,
            reading.to_tags(),
            reading.to_fields(),
            reading.timestamp,
        )

        if not accepted:
            logger.warning(
                "[HANDLER] Reading dropped: device=%s type=%s",
                reading.device_id,
                reading.sensor_type.value,
            )
            self._sink_error(
                f"Failed to store {reading.sensor_type.value} for {reading.device_id}"
            )
            self._stats.incr("failed")
            return None

        self._stats.incr("processed")
        if self._sink is not None:
            self._sink.info(
                f"Stored {reading.sensor_type.value}={reading.value} for {reading.device_id}"
            )

        # Log periódico
        if self._stats.processed % 10 == 0:
            logger.info("[HANDLER] %s", self._stats)

        return reading

    def _sink_error(self, message: str, error: object = None):
        if self._sink is not None:
            self._sink.error(message, error)

    @property
    def stats(self) -> Stats:
        return self._stats
