from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from fantasy.api.deps import get_db, get_registry

router = APIRouter()

@router.get("/health")
def health(db: Session = Depends(get_db), registry=Depends(get_registry)):
    db.execute(text("SELECT 1"))
    return {"status": "ok", "current_season": registry.current_year()}
