from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fantasy.api.deps import get_db, get_stores, require_admin
from fantasy.core.errors import Conflict
from fantasy.schemas.managers import Manager, ManagerCreate, ManagerUpdate, ManagersResponse
from fantasy.services.seasons import SeasonStores

router = APIRouter()


@router.get("/{year}", response_model=ManagersResponse)
def list_managers(
    sort: str = Query("username"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    stores: SeasonStores = Depends(get_stores),
    db: Session = Depends(get_db),
):
    with db.begin():
        rows = stores.managers.list(db, sort=sort, order=order)
    return {"season": stores.year, "count": len(rows), "managers": rows}


@router.get("/{year}/stats")
def manager_stats(stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        totals = stores.managers.totals(db)
        rows = stores.managers.list(db)
    by_role = {}
    for m in rows:
        by_role[m["role"]] = by_role.get(m["role"], 0) + 1
    return {"season": stores.year, **totals, "by_role": by_role}


@router.get("/{year}/{manager_id}", response_model=Manager)
def get_manager(manager_id: int, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        return stores.managers.require(db, manager_id)


@router.post("/{year}", response_model=Manager, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
def create_manager(body: ManagerCreate, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        return stores.managers.create(db, **body.model_dump())


@router.put("/{year}/{manager_id}", response_model=Manager, dependencies=[Depends(require_admin)])
def update_manager(
    manager_id: int,
    body: ManagerUpdate,
    stores: SeasonStores = Depends(get_stores),
    db: Session = Depends(get_db),
):
    with db.begin():
        return stores.managers.update(db, manager_id, body.model_dump(exclude_unset=True))


@router.delete("/{year}/{manager_id}", dependencies=[Depends(require_admin)])
def delete_manager(manager_id: int, stores: SeasonStores = Depends(get_stores), db: Session = Depends(get_db)):
    with db.begin():
        stores.managers.require(db, manager_id)
        if stores.rosters.count_for_manager(db, manager_id):
            raise Conflict("Manager holds rosters and cannot be deleted", {"manager_id": manager_id})
        deleted = stores.managers.delete(db, manager_id)
    return {"season": stores.year, "deleted": {"id": deleted["id"], "username": deleted["username"]}}
