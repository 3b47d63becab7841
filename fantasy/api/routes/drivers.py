from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fantasy.api.deps import get_db, get_stores, require_admin
from fantasy.core.errors import Conflict
from fantasy.schemas.drivers import Driver, DriverCreate, DriverUpdate, DriversResponse
from fantasy.services.seasons import SeasonStores

router = APIRouter()


@router.get("/{year}", response_model=DriversResponse)
def list_drivers(
    sort: str = Query("name", description="name, current_value or points"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    stores: SeasonStores = Depends(get_stores),
    db: Session = Depends(get_db),
):
    with db.begin():
        rows = stores.drivers.list(db, sort=sort, order=order)
    return {"season": stores.year, "count": len(rows), "drivers": rows}


@router.get("/{year}/stats")
def driver_stats(stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        totals = stores.drivers.totals(db)
        categories = stores.drivers.category_breakdown(db)
    return {"season": stores.year, **totals, "categories": categories}


@router.get("/{year}/{driver_id}", response_model=Driver)
def get_driver(driver_id: int, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        return stores.drivers.require(db, driver_id)


@router.post("/{year}", response_model=Driver, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
def create_driver(body: DriverCreate, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        return stores.drivers.create(db, **body.model_dump())


@router.put("/{year}/{driver_id}", response_model=Driver, dependencies=[Depends(require_admin)])
def update_driver(
    driver_id: int,
    body: DriverUpdate,
    stores: SeasonStores = Depends(get_stores),
    db: Session = Depends(get_db),
):
    with db.begin():
        return stores.drivers.update(db, driver_id, body.model_dump(exclude_unset=True))


@router.delete("/{year}/{driver_id}", dependencies=[Depends(require_admin)])
def delete_driver(driver_id: int, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        stores.drivers.require(db, driver_id)
        if stores.rosters.references_driver(db, driver_id):
            raise Conflict("Driver is part of existing rosters and cannot be deleted", {"driver_id": driver_id})
        deleted = stores.drivers.delete(db, driver_id)
    return {"season": stores.year, "deleted": {"id": deleted["id"], "name": deleted["name"]}}
