from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fantasy.api.deps import get_db, get_stores, require_admin
from fantasy.schemas.ppm import SettleRequest
from fantasy.services.ppm import DriverResult, PPMSettlementEngine
from fantasy.services.seasons import SeasonStores

router = APIRouter()


def get_ppm_engine(stores: SeasonStores = Depends(get_stores)) -> PPMSettlementEngine:
    return PPMSettlementEngine(stores)


def _results(body: SettleRequest):
    return [DriverResult(r.driver_id, r.points_gained) for r in body.driver_results]


@router.post("/{year}/simulate")
def simulate(body: SettleRequest, engine: PPMSettlementEngine = Depends(get_ppm_engine),
             db: Session = Depends(get_db)):
    preview = engine.simulate(db, body.race_id, _results(body), body.venue_points)
    return {"season": engine.year, "preview": True, **preview}


@router.post("/{year}/settle", dependencies=[Depends(require_admin)])
def settle(body: SettleRequest, engine: PPMSettlementEngine = Depends(get_ppm_engine),
           db: Session = Depends(get_db)):
    return {"season": engine.year, **engine.settle(db, body.race_id, _results(body), body.venue_points)}


@router.get("/{year}/history")
def history(
    limit: int = Query(10, ge=1, le=50),
    engine: PPMSettlementEngine = Depends(get_ppm_engine),
    db: Session = Depends(get_db),
):
    rows = engine.history(db, limit=limit)
    return {"season": engine.year, "count": len(rows), "races": rows}


@router.get("/{year}/season-summary")
def season_summary(engine: PPMSettlementEngine = Depends(get_ppm_engine), db: Session = Depends(get_db)):
    return engine.season_summary(db)


@router.get("/{year}/driver-analysis/{driver_id}")
def driver_analysis(driver_id: int, engine: PPMSettlementEngine = Depends(get_ppm_engine),
                    db: Session = Depends(get_db)):
    return {"season": engine.year, **engine.driver_analysis(db, driver_id)}


@router.get("/{year}/value-changes")
def value_changes(
    limit: int = Query(10, ge=1, le=50),
    engine: PPMSettlementEngine = Depends(get_ppm_engine),
    db: Session = Depends(get_db),
):
    return {"season": engine.year, **engine.value_changes(db, limit=limit)}
