"""Clasificador de mensajes MQTT por topic y payload.

Función pura: sin conexión, sin estado, determinista.

Convención de topic: ``<ignorado>/<device_id>/<sensor_type>[/...]``

Orden de evaluación:
1. Payload no numérico → None
2. Menos de 3 segmentos → None
3. device_id vacío → None
4. sensor_type fuera de {temperature, humidity} → None
5. Default → SensorReading
"""

from __future__ import annotations

import math
from typing import Optional

from ..domain.payload import DecodedPayload, NumberPayload
from ..domain.reading import SensorReading, SensorType

MIN_TOPIC_SEGMENTS = 3


def classify(topic: str, payload: DecodedPayload) -> Optional[SensorReading]:
    """Convierte (topic, payload) en una lectura almacenable o None.

    Args:
        topic: Topic MQTT completo
        payload: Payload ya decodificado

    Returns:
        SensorReading si el mensaje es almacenable, None si se ignora
    """
    if not isinstance(payload, NumberPayload):
        return None
    if not math.isfinite(payload.value):
        return None

    segments = topic.split("/")
    if len(segments) < MIN_TOPIC_SEGMENTS:
        return None

    device_id = segments[1]
    if not device_id:
        return None

    sensor_type = SensorType.parse(segments[2])
    if sensor_type is None:
        return None

    return SensorReading(
        device_id=device_id,
        sensor_type=sensor_type,
        value=payload.value,
    )
