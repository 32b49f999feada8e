"""Core module - Pipeline de ingesta MQTT → InfluxDB.

Estructura:
- transport/      → Conexión MQTT y handler de mensajes
- domain/         → Lecturas y payloads decodificados
- classification/ → Clasificación topic/payload → lectura
- monitoring/     → Estadísticas y health
"""
