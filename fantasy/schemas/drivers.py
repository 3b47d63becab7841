from typing import List, Optional
from pydantic import BaseModel, Field

class DriverCreate(BaseModel):
    name: str = Field(..., min_length=1)
    categories: List[str] = Field(..., min_length=1, max_length=2, description="One or two of M, JS, I")
    current_value: float = Field(0, ge=0)
    points: float = Field(0, ge=0)
    image_url: Optional[str] = None
    description: Optional[str] = None

class DriverUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    categories: Optional[List[str]] = Field(None, min_length=1, max_length=2)
    current_value: Optional[float] = Field(None, ge=0)
    points: Optional[float] = Field(None, ge=0)
    image_url: Optional[str] = None
    description: Optional[str] = None

class Driver(BaseModel):
    id: int
    name: str
    current_value: float
    previous_value: float
    points: float
    categories: List[str]
    image_url: Optional[str] = None
    description: Optional[str] = None

class DriversResponse(BaseModel):
    season: int
    count: int
    drivers: List[Driver]
