"""Modelo de dominio para lecturas de sensores."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

MEASUREMENT = "sensor_readings"


class SensorType(str, Enum):
    """Tipos de sensor almacenables. No hay otros."""
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"

    @classmethod
    def parse(cls, raw: str) -> Optional["SensorType"]:
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclass(frozen=True)
class SensorReading:
    """Lectura de sensor - unidad persistida en la serie temporal.

    Flujo: MQTT → decode → classify → SensorReading → InfluxDB

    ``timestamp`` es opcional: sin él, InfluxDB asigna el instante de escritura.
    """
    device_id: str
    sensor_type: SensorType
    value: float
    timestamp: Optional[datetime] = None

    def to_tags(self) -> dict:
        return {
            "device_id": self.device_id,
            "sensor_type": self.sensor_type.value,
        }

    def to_fields(self) -> dict:
        return {"value": float(self.value)}
