from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fantasy.api.deps import get_registry, require_admin
from fantasy.schemas.seasons import CopyRequest, SeasonsResponse
from fantasy.services.seasons import COPYABLE, SeasonRegistry

router = APIRouter()

CONFIRM_TOKEN = "DELETE_ALL_DATA"


@router.get("", response_model=SeasonsResponse)
def list_seasons(registry: SeasonRegistry = Depends(get_registry)):
    seasons = registry.list_seasons()
    return {"count": len(seasons), "seasons": seasons}


@router.get("/stats")
def all_season_stats(registry: SeasonRegistry = Depends(get_registry)):
    seasons = registry.list_seasons()
    return {
        "count": len(seasons),
        "seasons": [registry.season_statistics(y) for y in seasons],
    }


@router.get("/{year}/stats")
def season_stats(year: int, registry: SeasonRegistry = Depends(get_registry)):
    return registry.season_statistics(year)


@router.get("/{first}/compare/{second}")
def compare(first: int, second: int, registry: SeasonRegistry = Depends(get_registry)):
    return registry.compare_seasons(first, second)


@router.post("/{year}/initialize", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def initialize(year: int, registry: SeasonRegistry = Depends(get_registry)):
    return registry.initialize_season(year)


@router.post("/copy", dependencies=[Depends(require_admin)])
def copy(body: CopyRequest, registry: SeasonRegistry = Depends(get_registry)):
    collections: List[str]
    if isinstance(body.collections, str):
        if body.collections != "all":
            raise HTTPException(400, detail="collections must be a list or 'all'")
        collections = list(COPYABLE)
    else:
        collections = body.collections
    return registry.copy_season(body.from_year, body.to_year, collections)


@router.delete("/{year}", dependencies=[Depends(require_admin)])
def drop(
    year: int,
    confirm_delete: str = Query(..., description=f"Must equal {CONFIRM_TOKEN}"),
    registry: SeasonRegistry = Depends(get_registry),
):
    if confirm_delete != CONFIRM_TOKEN:
        raise HTTPException(400, detail=f"confirm_delete must be '{CONFIRM_TOKEN}'")
    return registry.drop_season(year)
