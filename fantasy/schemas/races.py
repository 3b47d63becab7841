from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

class RaceEvent(BaseModel):
    title: str = Field(..., min_length=1)
    starttime: Optional[datetime] = None
    endtime: Optional[datetime] = None
    status: str = Field("scheduled", pattern="^(scheduled|active|completed)$")

class RaceCreate(BaseModel):
    round_number: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)
    location: Optional[str] = None
    events: List[RaceEvent] = []
    submission_deadline: datetime
    is_locked: bool = False

class RaceUpdate(BaseModel):
    round_number: Optional[int] = Field(None, ge=1)
    name: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = None
    events: Optional[List[RaceEvent]] = None
    submission_deadline: Optional[datetime] = None
    is_locked: Optional[bool] = None

class Race(BaseModel):
    id: int
    round_number: int
    name: str
    location: Optional[str] = None
    events: List[RaceEvent]
    submission_deadline: datetime
    is_locked: bool
    is_processed: bool
    ppm_data: Optional[Dict[str, Any]] = None

class RacesResponse(BaseModel):
    season: int
    count: int
    races: List[Race]
