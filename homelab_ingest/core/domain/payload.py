"""Payload decodificado de un mensaje MQTT.

Un payload es una de tres variantes:

- ``NumberPayload``: JSON numérico desnudo (``22.5``). Único caso almacenable.
- ``TextPayload``: texto que no es JSON, o un string JSON (``"wet"``).
- ``StructuredPayload``: cualquier otro JSON (objeto, lista, bool, null).
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Union


class PayloadDecodeError(ValueError):
    """El payload no es UTF-8 válido."""


@dataclass(frozen=True)
class NumberPayload:
    value: float


@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class StructuredPayload:
    data: Any


DecodedPayload = Union[NumberPayload, TextPayload, StructuredPayload]


def decode_text(payload: bytes) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadDecodeError(f"Payload is not valid UTF-8: {e}") from e


def parse_payload(message: str) -> DecodedPayload:
    """Intenta parsear JSON; si falla, el payload es texto plano.

    No es un error: los dispositivos pueden publicar texto libre.
    """
    try:
        data = json.loads(message)
    except ValueError:
        return TextPayload(message)

    # bool es subclase de int en Python, pero true/false no son lecturas
    if isinstance(data, bool):
        return StructuredPayload(data)
    if isinstance(data, (int, float)):
        try:
            return NumberPayload(float(data))
        except OverflowError:
            # entero JSON fuera de rango float64: el clasificador lo descarta
            return NumberPayload(math.inf)
    if isinstance(data, str):
        return TextPayload(data)
    return StructuredPayload(data)
