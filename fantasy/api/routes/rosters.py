from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fantasy.api.deps import get_caller, get_db, get_stores
from fantasy.core.caller import Caller
from fantasy.schemas.rosters import RosterCreate, RosterUpdate, RosterValidate
from fantasy.services.rosters import RosterService
from fantasy.services.seasons import SeasonStores

router = APIRouter()


def get_service(stores: SeasonStores = Depends(get_stores)) -> RosterService:
    return RosterService(stores)


@router.get("/{year}")
def list_rosters(
    manager_id: Optional[int] = None,
    race_id: Optional[int] = None,
    sort: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    service: RosterService = Depends(get_service),
    db: Session = Depends(get_db),
):
    rows = service.list(db, manager_id=manager_id, race_id=race_id, sort=sort, order=order)
    return {"season": service.stores.year, "count": len(rows), "rosters": rows}


@router.get("/{year}/stats")
def roster_stats(service: RosterService = Depends(get_service), db: Session = Depends(get_db)):
    return {"season": service.stores.year, **service.statistics(db)}


@router.get("/{year}/manager/{manager_id}")
def manager_rosters(
    manager_id: int,
    caller: Caller = Depends(get_caller),
    service: RosterService = Depends(get_service),
    db: Session = Depends(get_db),
):
    return {"season": service.stores.year, **service.manager_rosters(db, caller, manager_id)}


@router.post("/{year}/validate")
def validate_roster(body: RosterValidate, service: RosterService = Depends(get_service),
                    db: Session = Depends(get_db)):
    report = service.validate_selection(db, body.manager_id, body.driver_ids, body.declared_cost)
    return {"season": service.stores.year, "validation": report}


@router.get("/{year}/{roster_id}")
def get_roster(roster_id: int, service: RosterService = Depends(get_service), db: Session = Depends(get_db)):
    return service.get(db, roster_id)


@router.post("/{year}", status_code=status.HTTP_201_CREATED)
def create_roster(
    body: RosterCreate,
    caller: Caller = Depends(get_caller),
    service: RosterService = Depends(get_service),
    db: Session = Depends(get_db),
):
    result = service.create(
        db,
        caller,
        manager_id=body.manager_id,
        race_id=body.race_id,
        driver_ids=body.driver_ids,
        declared_cost=body.declared_cost,
        points_earned=body.points_earned,
    )
    return {"season": service.stores.year, **result}


@router.put("/{year}/{roster_id}")
def update_roster(
    roster_id: int,
    body: RosterUpdate,
    caller: Caller = Depends(get_caller),
    service: RosterService = Depends(get_service),
    db: Session = Depends(get_db),
):
    result = service.update(
        db,
        caller,
        roster_id,
        driver_ids=body.driver_ids,
        declared_cost=body.declared_cost,
        points_earned=body.points_earned,
    )
    return {"season": service.stores.year, **result}


@router.delete("/{year}/{roster_id}")
def delete_roster(
    roster_id: int,
    caller: Caller = Depends(get_caller),
    service: RosterService = Depends(get_service),
    db: Session = Depends(get_db),
):
    return {"season": service.stores.year, **service.delete(db, caller, roster_id)}
