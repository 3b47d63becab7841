from typing import List, Optional
from pydantic import BaseModel, Field

class DriverResultIn(BaseModel):
    driver_id: int
    points_gained: float = Field(0, ge=0)

class SettleRequest(BaseModel):
    race_id: int
    driver_results: List[DriverResultIn] = []
    venue_points: Optional[float] = Field(None, gt=0, description="Defaults to 930")
