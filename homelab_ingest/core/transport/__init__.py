"""Transport layer - Recepción de datos MQTT."""

from .connection_state import ConnectionState
from .mqtt_client import MQTTClient
from .message_handler import MessageHandler

__all__ = ["ConnectionState", "MQTTClient", "MessageHandler"]
