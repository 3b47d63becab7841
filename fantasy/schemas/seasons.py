from typing import List, Union
from pydantic import BaseModel, Field

class CopyRequest(BaseModel):
    from_year: int
    to_year: int
    # "all" copies drivers, managers and races
    collections: Union[List[str], str] = Field(default_factory=lambda: ["drivers", "managers"])

class SeasonsResponse(BaseModel):
    count: int
    seasons: List[int]
