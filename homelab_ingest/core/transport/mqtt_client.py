"""Cliente MQTT para recepción de lecturas."""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Optional, Set

import paho.mqtt.client as mqtt

from common.config import Settings
from common.log_sink import MqttLogSink
from .connection_state import (
    Closed,
    Connected,
    ConnectionState,
    Error,
    MessageReceived,
    MqttEvent,
    Reconnecting,
)
from .message_handler import MessageHandler
from ..monitoring.stats import Stats

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "#"
ClientFactory = Callable[[str], mqtt.Client]


def random_client_id(prefix: str = "homelab-api") -> str:
    # Solo evita colisiones entre instancias; no es un secreto.
    return f"{prefix}-{random.getrandbits(24):06x}"


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        clean_session=True,
        protocol=mqtt.MQTTv311,
    )


class MQTTClient:
    """Servicio de ingesta: mantiene una suscripción viva a todos los topics.

    Responsabilidades:
    - Conexión/desconexión al broker (la reconexión la hace paho, intervalo fijo)
    - Suscripción wildcard al conectar
    - Traducción de callbacks paho a eventos y despacho serializado
    - Delegación de mensajes al MessageHandler

    Ningún error de transporte se propaga al caller: se loguea y paho reintenta.
    """

    def __init__(
        self,
        handler: MessageHandler,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic: str = DEFAULT_TOPIC,
        connect_timeout: float = 4.0,
        reconnect_period: float = 1.0,
        keepalive: int = 60,
        log_sink: Optional[MqttLogSink] = None,
        client_id: Optional[str] = None,
        client_factory: ClientFactory = _default_client_factory,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.topic = topic
        self.connect_timeout = connect_timeout
        self.reconnect_period = reconnect_period
        self.keepalive = keepalive
        self.client_id = client_id or random_client_id()

        self._handler = handler
        self._sink = log_sink
        self._client_factory = client_factory

        self._client: Optional[mqtt.Client] = None
        self._state = ConnectionState.DISCONNECTED
        self._stopping = False
        self._subscriptions: Set[str] = set()
        self._reconnect_count = 0
        self._dispatch_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        handler: MessageHandler,
        log_sink: Optional[MqttLogSink] = None,
    ) -> "MQTTClient":
        return cls(
            handler,
            broker_host=settings.mqtt_host,
            broker_port=settings.mqtt_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            topic=settings.mqtt_topic,
            connect_timeout=settings.mqtt_connect_timeout,
            reconnect_period=settings.mqtt_reconnect_period,
            log_sink=log_sink,
        )

    def connect(self, wait_timeout: Optional[float] = None) -> bool:
        """Inicia la conexión al broker.

        La conexión es asíncrona: un broker caído no lanza, se loguea y paho
        reintenta cada ``reconnect_period`` segundos sin límite.

        Args:
            wait_timeout: Si se indica, espera hasta ese tiempo al CONNACK

        Returns:
            True si el loop de red quedó en marcha (y conectado, si se esperó)
        """
        if self._client is not None:
            return self.is_connected if wait_timeout is not None else True

        try:
            self._client = self._client_factory(self.client_id)
            self._client.connect_timeout = self.connect_timeout
            self._client.reconnect_delay_set(
                min_delay=self.reconnect_period,
                max_delay=self.reconnect_period,
            )

            self._client.on_connect = self._on_connect
            self._client.on_connect_fail = self._on_connect_fail
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message
            self._client.on_subscribe = self._on_subscribe

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            self._stopping = False
            self._state = ConnectionState.CONNECTING
            logger.info("[MQTT] Connecting to %s:%d as %s",
                        self.broker_host, self.broker_port, self.client_id)
            self._sink_info(f"Connecting to MQTT broker {self.broker_host}:{self.broker_port}")

            self._client.connect_async(self.broker_host, self.broker_port, keepalive=self.keepalive)
            self._client.loop_start()

        except Exception as e:
            logger.exception("[MQTT] Connection setup failed: %s", e)
            self._sink_error("MQTT connection setup failed", e)
            self._client = None
            self._state = ConnectionState.DISCONNECTED
            return False

        if wait_timeout is None:
            return True

        deadline = time.monotonic() + wait_timeout
        while time.monotonic() < deadline:
            if self.is_connected:
                return True
            time.sleep(0.1)

        logger.error("[MQTT] Connection timeout")
        return False

    def disconnect(self):
        """Desconecta del broker. Idempotente; no falla si nunca se conectó."""
        self._stopping = True
        client = self._client
        self._client = None

        if client is not None:
            try:
                client.disconnect()
                client.loop_stop()
            except Exception as e:
                logger.warning("[MQTT] Disconnect error: %s", e)
            logger.info("[MQTT] Client disconnected. %s", self.stats)
            self._sink_info("MQTT client disconnected")

        with self._dispatch_lock:
            self._state = ConnectionState.DISCONNECTED

        if self._sink is not None:
            self._sink.flush()

    def publish(self, topic: str, message: str | bytes) -> bool:
        """Publica un mensaje. Errores se loguean, nunca se lanzan."""
        client = self._client
        if client is None or not self.is_connected:
            logger.error("[MQTT] Publish to %s failed: client not connected", topic)
            self._sink_error(f"Publish to {topic} failed: client not connected")
            return False

        try:
            info = client.publish(topic, message)
        except Exception as e:
            logger.error("[MQTT] Publish to %s failed: %s", topic, e)
            self._sink_error(f"Publish to {topic} failed", e)
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Publish to %s failed: %s", topic, mqtt.error_string(info.rc))
            self._sink_error(f"Publish to {topic} failed", mqtt.error_string(info.rc))
            return False

        logger.info("[MQTT] Published to %s", topic)
        return True

    # ------------------------------------------------------------------
    # Despacho de eventos
    # ------------------------------------------------------------------

    def dispatch(self, event: MqttEvent):
        """Procesa un evento del transporte. Serializado, nunca lanza."""
        with self._dispatch_lock:
            try:
                if isinstance(event, MessageReceived):
                    self._handler.handle(event.topic, event.payload)
                elif isinstance(event, Connected):
                    self._handle_connected(event)
                elif isinstance(event, Closed):
                    self._handle_closed(event)
                elif isinstance(event, Reconnecting):
                    self._handle_reconnecting()
                elif isinstance(event, Error):
                    self._handle_error(event)
            except Exception as e:
                logger.exception("[MQTT] Event handling failed for %s: %s", type(event).__name__, e)

    def _handle_connected(self, event: Connected):
        if self._stopping:
            return
        self._state = ConnectionState.CONNECTED
        logger.info("[MQTT] Connected to broker (session_present=%s)", event.session_present)
        self._sink_info("Connected to MQTT broker")
        self._subscribe(event.session_present)

    def _handle_closed(self, event: Closed):
        if self._stopping:
            self._state = ConnectionState.DISCONNECTED
            return
        self._state = ConnectionState.DISCONNECTED
        logger.warning("[MQTT] Disconnected (reason=%s)", event.reason)
        self._sink_info(f"Disconnected from MQTT broker ({event.reason})")

    def _handle_reconnecting(self):
        if self._stopping:
            return
        self._state = ConnectionState.RECONNECTING
        self._reconnect_count += 1
        logger.info("[MQTT] Reconnecting to broker (attempt=%d)", self._reconnect_count)
        self._sink_info("Reconnecting to MQTT broker...")

    def _handle_error(self, event: Error):
        logger.error("[MQTT] Error: %s", event.cause)
        self._sink_error("MQTT error", event.cause)

    def _subscribe(self, session_present: bool):
        # Con sesión persistente el broker conserva la suscripción.
        if session_present and self.topic in self._subscriptions:
            logger.info("[MQTT] Session present, keeping subscription to %s", self.topic)
            return

        client = self._client
        if client is None:
            return

        result, _mid = client.subscribe(self.topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Subscribe to %s failed: %s", self.topic, mqtt.error_string(result))
            self._sink_error(f"Subscribe to {self.topic} failed", mqtt.error_string(result))
            return

        self._subscriptions.add(self.topic)
        logger.info("[MQTT] Subscribed to %s", self.topic)
        self._sink_info(f"Subscribed to topic: {self.topic}")

    # ------------------------------------------------------------------
    # Callbacks paho (thread de red) → eventos
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de conexión."""
        if reason_code.is_failure:
            self.dispatch(Error(f"Connection refused: {reason_code}"))
            self.dispatch(Reconnecting())
            return
        self.dispatch(Connected(session_present=bool(flags.session_present)))

    def _on_connect_fail(self, client, userdata):
        """Callback de fallo de conexión (broker inalcanzable)."""
        self.dispatch(Error(f"Unable to reach broker {self.broker_host}:{self.broker_port}"))
        self.dispatch(Reconnecting())

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de desconexión."""
        self.dispatch(Closed(reason_code))
        if not self._stopping:
            self.dispatch(Reconnecting())

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje - delega al handler."""
        self.dispatch(MessageReceived(msg.topic, msg.payload))

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        for rc in reason_code_list:
            if rc.is_failure:
                self.dispatch(Error(f"Subscription to {self.topic} rejected: {rc}"))

    # ------------------------------------------------------------------

    def _sink_info(self, message: str):
        if self._sink is not None:
            self._sink.info(message)

    def _sink_error(self, message: str, error: object = None):
        if self._sink is not None:
            self._sink.error(message, error)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def subscriptions(self) -> Set[str]:
        return set(self._subscriptions)

    @property
    def stats(self) -> Stats:
        return self._handler.stats

    def health_check(self) -> dict:
        return {
            "healthy": self.is_connected,
            "state": self._state.value,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "client_id": self.client_id,
            "subscriptions": sorted(self._subscriptions),
            "reconnect_count": self._reconnect_count,
            **self.stats.to_dict(),
        }
