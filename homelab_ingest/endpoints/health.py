"""Health and readiness endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from ..core.monitoring.health import HealthChecker
from ..dependencies import Services, get_services
from ..schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health():
    """Liveness probe: always returns OK if process is running."""
    return HealthResponse(timestamp=datetime.now(timezone.utc))


@router.get("/ready")
def ready(services: Services = Depends(get_services)):
    """Readiness probe: checks MQTT connection and InfluxDB reachability."""
    status = HealthChecker(services.mqtt, services.store).get_status()
    if not status.healthy:
        raise HTTPException(status_code=503, detail=status.to_dict())
    return {"status": "ready", **status.to_dict()}


@router.get("/metrics")
def metrics(services: Services = Depends(get_services)):
    """Ingestion counters and write buffer stats."""
    return {
        "mqtt": services.mqtt.health_check() if services.mqtt else None,
        "influxdb": services.store.get_stats(),
    }
