from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fantasy.api.deps import get_db, get_stores, require_admin
from fantasy.schemas.races import Race, RaceCreate, RacesResponse, RaceUpdate
from fantasy.services.seasons import SeasonStores

router = APIRouter()


@router.get("/{year}", response_model=RacesResponse)
def list_races(
    sort: str = Query("round_number"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    event_status: Optional[str] = Query(None, alias="status", pattern="^(scheduled|active|completed)$"),
    stores: SeasonStores = Depends(get_stores),
    db: Session = Depends(get_db),
):
    with db.begin():
        rows = stores.races.list(db, sort=sort, order=order, status=event_status)
    return {"season": stores.year, "count": len(rows), "races": rows}


@router.get("/{year}/{race_id}", response_model=Race)
def get_race(race_id: int, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        return stores.races.require(db, race_id)


@router.post("/{year}", response_model=Race, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
def create_race(body: RaceCreate, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        return stores.races.create(db, **body.model_dump())


@router.put("/{year}/{race_id}", response_model=Race, dependencies=[Depends(require_admin)])
def update_race(
    race_id: int,
    body: RaceUpdate,
    stores: SeasonStores = Depends(get_stores),
    db: Session = Depends(get_db),
):
    with db.begin():
        return stores.races.update(db, race_id, body.model_dump(exclude_unset=True))
