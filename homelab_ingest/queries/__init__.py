"""Módulo de queries para consultas al store.

Contiene funciones de consulta sin lógica de negocio.
"""

from .sensor_latest import (
    MissingDeviceIdError,
    SensorQueryError,
    get_latest_values,
)

__all__ = [
    "MissingDeviceIdError",
    "SensorQueryError",
    "get_latest_values",
]
