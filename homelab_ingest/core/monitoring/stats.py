"""Estadísticas de procesamiento."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Stats:
    """Estadísticas de procesamiento de mensajes.

    - received: mensajes entregados por el broker
    - processed: lecturas aceptadas por el store
    - ignored: mensajes descartados por el clasificador
    - failed: errores de decode o de escritura
    """

    received: int = 0
    processed: int = 0
    ignored: int = 0
    failed: int = 0
    last_message_at: float = 0
    started_at: datetime = field(default_factory=_utcnow)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, name: str, amount: int = 1):
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} processed={self.processed} "
            f"ignored={self.ignored} failed={self.failed}"
        )

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        return {
            "received": self.received,
            "processed": self.processed,
            "ignored": self.ignored,
            "failed": self.failed,
            "last_message_at": self.last_message_at,
            "started_at": self.started_at.isoformat(),
            "success_rate": self._success_rate(),
        }

    def _success_rate(self) -> float:
        """Calcula tasa de éxito sobre lecturas almacenables."""
        total = self.processed + self.failed
        if total == 0:
            return 1.0
        return self.processed / total
