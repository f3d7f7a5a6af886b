from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging
from datetime import datetime, timezone

from .config import get_settings
from .database import async_session_maker, init_db
from .routers import admin, docs, locks, users
from .services.edit_lock import EditLockService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_db()
    task = asyncio.create_task(purge_stale_locks_periodically())
    yield
    # Shutdown
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(lifespan=lifespan, title="Document Edit Lock API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(locks.router, prefix="/api", tags=["locks"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(docs.router, prefix="/docs", tags=["docs"])


async def purge_stale_locks_periodically():
    """Background task deleting locks whose editors went away"""
    settings = get_settings()
    while True:
        try:
            async with async_session_maker() as db:
                await EditLockService(db, settings).purge_stale()
        except Exception:
            logger.exception("Error purging stale edit locks")
        await asyncio.sleep(settings.purge_interval)


@app.get("/")
async def root():
    return {"message": "Document Edit Lock API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}
