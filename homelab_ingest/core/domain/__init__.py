"""Domain layer - Modelos y contratos."""

from .reading import MEASUREMENT, SensorReading, SensorType
from .payload import (
    DecodedPayload,
    NumberPayload,
    PayloadDecodeError,
    StructuredPayload,
    TextPayload,
    decode_text,
    parse_payload,
)

__all__ = [
    "MEASUREMENT",
    "SensorReading",
    "SensorType",
    "DecodedPayload",
    "NumberPayload",
    "PayloadDecodeError",
    "StructuredPayload",
    "TextPayload",
    "decode_text",
    "parse_payload",
]
