"""Persistence infrastructure: time-series storage in InfluxDB."""

from .influx_store import TimeSeriesStore

__all__ = ["TimeSeriesStore"]
