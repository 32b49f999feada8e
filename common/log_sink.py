"""Sink de log en archivo para el tráfico MQTT.

Un archivo append-only por ejecución del proceso (``mqtt-YYYY-MM-DD.log``)
con líneas del tipo::

    [2026-10-19T08:00:00.123Z] [INFO] mensaje
    [2026-10-19T08:00:00.456Z] [JSON] label: {
      "value": 22.5
    }
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

JSON_LEVEL = 25
logging.addLevelName(JSON_LEVEL, "JSON")

LINE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"


class _IsoFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):  # noqa: N802 - logging API
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MqttLogSink:
    """Writer de log estructurado con un único destino por proceso.

    Internamente usa un ``logging.Logger`` aislado (no propaga al root) con
    un ``FileHandler`` en modo append. Después de ``close()`` las escrituras
    se ignoran.
    """

    def __init__(self, log_dir: str | Path = "logs", today: Optional[datetime] = None):
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)

        date = (today or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
        self._log_file = logs_dir / f"mqtt-{date}.log"

        self._handler: Optional[logging.FileHandler] = logging.FileHandler(
            self._log_file, mode="a", encoding="utf-8"
        )
        self._handler.setFormatter(_IsoFormatter(LINE_FORMAT))

        self._logger = logging.Logger(f"mqtt_sink.{date}", level=logging.DEBUG)
        self._logger.propagate = False
        self._logger.addHandler(self._handler)

    def _write(self, level: int, message: str) -> None:
        if self._handler is None:
            return
        self._logger.log(level, message)

    def info(self, message: str) -> None:
        self._write(logging.INFO, message)

    def error(self, message: str, error: Any = None) -> None:
        if error is not None:
            message = f"{message} - {error}"
        self._write(logging.ERROR, message)

    def debug(self, message: str) -> None:
        self._write(logging.DEBUG, message)

    def json(self, label: str, data: Any) -> None:
        try:
            rendered = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            self.error(f"Failed to stringify JSON for {label}", e)
            return
        self._write(JSON_LEVEL, f"{label}: {rendered}")

    def flush(self) -> None:
        if self._handler is not None:
            self._handler.flush()

    def close(self) -> None:
        if self._handler is None:
            return
        self._logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None

    @property
    def closed(self) -> bool:
        return self._handler is None

    @property
    def log_file_path(self) -> Path:
        return self._log_file
