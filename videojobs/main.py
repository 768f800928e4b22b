import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from videojobs.api.jobs import router as jobs_router
from videojobs.api.realtime import router as realtime_router
from videojobs.api.status import router as status_router
from videojobs.core.config import settings
from videojobs.core.logging import configure_logging
from videojobs.db.session import get_db
from videojobs.services.poller import build_poller
from videojobs.services.realtime import EventHub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    poller = None
    if settings.poller_enabled and settings.poller_mode == "inprocess":
        poller = build_poller(app.state.hub)
        app.state.poller = poller
        poller.start()
    else:
        logger.info("In-process poller disabled (enabled=%s, mode=%s)", settings.poller_enabled, settings.poller_mode)

    yield

    if poller is not None:
        # lets the in-flight job finish without blocking the event loop
        await asyncio.to_thread(poller.stop)


app = FastAPI(title="Video Jobs API", version="0.1.0", lifespan=lifespan)
app.state.hub = EventHub()
app.state.poller = None

app.include_router(jobs_router)
app.include_router(status_router)
app.include_router(realtime_router)


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    db_ok = False
    db: Session = next(get_db())
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
    finally:
        db.close()

    return HealthResponse(ok=True, service="api", version=app.version, db_ok=db_ok)
