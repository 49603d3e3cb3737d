from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    database: str
    storage: str
    vision: str
    broker_edit_policy: str
    timestamp: datetime
    environment: str
    version: str
