from typing import List, Literal, Optional
from pydantic import BaseModel, Field

Role = Literal["admin", "user"]

class ManagerCreate(BaseModel):
    username: str = Field(..., min_length=1)
    # hashed upstream by the auth service; stored as-is, never returned
    credential_hash: str = Field(..., min_length=1)
    role: Role = "user"
    budget: float = Field(0, ge=0)

class ManagerUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=1)
    credential_hash: Optional[str] = Field(None, min_length=1)
    role: Optional[Role] = None
    points: Optional[float] = Field(None, ge=0)

class Manager(BaseModel):
    id: int
    username: str
    role: str
    budget: float
    points: float

class ManagersResponse(BaseModel):
    season: int
    count: int
    managers: List[Manager]
