from typing import List, Optional
from pydantic import BaseModel, Field

class RosterCreate(BaseModel):
    manager_id: int
    race_id: int
    driver_ids: List[int]
    # client-side total; cross-checked against current driver values
    declared_cost: Optional[float] = Field(None, ge=0)
    points_earned: float = Field(0, ge=0)

class RosterUpdate(BaseModel):
    driver_ids: Optional[List[int]] = None
    declared_cost: Optional[float] = Field(None, ge=0)
    points_earned: Optional[float] = Field(None, ge=0)

class RosterValidate(BaseModel):
    manager_id: int
    driver_ids: List[int]
    declared_cost: Optional[float] = Field(None, ge=0)
