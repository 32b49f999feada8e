"""Monitoring layer - Métricas y observabilidad."""

from .stats import Stats
from .health import HealthChecker

__all__ = ["Stats", "HealthChecker"]
