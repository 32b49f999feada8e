"""Endpoint de últimos valores por dispositivo."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_store
from ..infrastructure.persistence.influx_store import TimeSeriesStore
from ..queries import MissingDeviceIdError, SensorQueryError, get_latest_values
from ..schemas import LatestValues, SensorLatestResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sensors", tags=["sensors"])


@router.get(
    "/{device_id}/latest",
    response_model=SensorLatestResponse,
    response_model_exclude_none=True,
)
def get_latest(device_id: str, store: TimeSeriesStore = Depends(get_store)):
    """Últimos valores de temperatura/humedad del dispositivo (ventana 24h).

    Una lectura recién recibida puede no aparecer hasta el próximo flush.
    """
    try:
        data = get_latest_values(store, device_id)
    except MissingDeviceIdError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SensorQueryError as e:
        logger.error("[API] Error fetching sensor data device=%s: %s", device_id, e.__cause__)
        raise HTTPException(status_code=500, detail=str(e))

    return SensorLatestResponse(
        device_id=device_id,
        data=LatestValues(**data),
        timestamp=datetime.now(timezone.utc),
    )
