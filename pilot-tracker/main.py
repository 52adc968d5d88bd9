import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from celery_worker import ingest_superhex_rows
from database import engine
from models import Base
from routers import quota as quota_router
from routers import teams as teams_router
from store import MissionLockedError, TeamStore, UnknownEntityError, get_store

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        Base.metadata.create_all(bind=engine)
        get_store().reload()
    except SQLAlchemyError as e:
        logger.error("Initial load failed, starting with an empty snapshot: %s", e)
    yield

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(teams_router.router, prefix="/api")
app.include_router(quota_router.router, prefix="/api")

@app.exception_handler(UnknownEntityError)
async def unknown_entity_handler(request: Request, exc: UnknownEntityError):
    return JSONResponse(status_code=404, content={"detail": f"Not found: {exc.args[0]}"})

@app.exception_handler(MissionLockedError)
async def mission_locked_handler(request: Request, exc: MissionLockedError):
    return JSONResponse(status_code=409, content={"detail": "Mission is submitted; reopen it before editing."})

# --- Pydantic Models ---
class ChangeNotification(BaseModel):
    table: str

# --- API Endpoints ---
@app.get("/")
def read_root():
    return {"status": "Pilot Tracker is running!"}

@app.post("/webhook/changes")
async def change_webhook(body: ChangeNotification, store: TeamStore = Depends(get_store)):
    scheduled = store.notify_change(body.table)
    return {"reload_scheduled": scheduled}

@app.post("/webhook/superhex")
async def superhex_webhook(rows: List[dict]):
    ingest_superhex_rows.delay(rows)
    return Response(status_code=202)
