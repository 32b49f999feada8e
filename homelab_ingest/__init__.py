"""Homelab IoT ingestion service: MQTT → InfluxDB."""
