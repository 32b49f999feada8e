"""Estado de conexión y eventos del cliente MQTT.

Los callbacks de paho se traducen a un único tipo de evento que el cliente
procesa en ``dispatch()``:

    Connected | MessageReceived | Error | Closed | Reconnecting
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class Connected:
    session_present: bool = False


@dataclass(frozen=True)
class MessageReceived:
    topic: str
    payload: bytes


@dataclass(frozen=True)
class Error:
    cause: object


@dataclass(frozen=True)
class Closed:
    reason: object = None


@dataclass(frozen=True)
class Reconnecting:
    pass


MqttEvent = Union[Connected, MessageReceived, Error, Closed, Reconnecting]
