import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fantasy.api.routes import drivers, health, managers, ppm, races, rosters, seasons
from fantasy.core.config import settings
from fantasy.core.errors import FantasyError
from fantasy.db.session import build_engine
from fantasy.services.seasons import SeasonRegistry

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def fantasy_error_handler(request: Request, exc: FantasyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(registry: Optional[SeasonRegistry] = None) -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fantasy League API", version="0.1.0")
    app.state.registry = registry or SeasonRegistry(build_engine())
    app.add_exception_handler(FantasyError, fantasy_error_handler)

    # Routers
    app.include_router(health.router, tags=["system"])
    app.include_router(seasons.router, prefix="/seasons", tags=["seasons"])
    app.include_router(drivers.router, prefix="/drivers", tags=["drivers"])
    app.include_router(managers.router, prefix="/managers", tags=["managers"])
    app.include_router(races.router, prefix="/races", tags=["races"])
    app.include_router(rosters.router, prefix="/rosters", tags=["rosters"])
    app.include_router(ppm.router, prefix="/ppm", tags=["ppm"])

    @app.get("/", include_in_schema=False)
    def root():
        return {"message": "Fantasy League API - see /docs"}

    return app


app = create_app()
