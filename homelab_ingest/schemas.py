from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class LatestValues(BaseModel):
    temperature: Optional[float] = None
    humidity: Optional[float] = None


class SensorLatestResponse(BaseModel):
    device_id: str = Field(..., alias="deviceId")
    data: LatestValues
    timestamp: datetime

    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: datetime
    service: str = "homelab-iot-backend"


class RootResponse(BaseModel):
    message: str = "Homelab IoT API"
    version: str
    endpoints: Dict[str, str] = Field(default_factory=dict)
