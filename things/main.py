from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import psycopg2
from fastapi import FastAPI

import uvicorn

from .db import (
    PostgresThingRepository,
    close_pool,
    get_database_url,
    init_pool,
    wait_for_database,
)
from .routes import api_router
from .settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("things")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if get_database_url():
        try:
            await asyncio.to_thread(wait_for_database)
        except psycopg2.OperationalError:
            logger.exception("Database not reachable at startup, continuing degraded")
    init_pool()
    app.state.thing_repo = PostgresThingRepository()
    logger.info("Thing repository ready")
    try:
        yield
    finally:
        close_pool()


app = FastAPI(title="Things Service", version="0.1.0", lifespan=lifespan)
app.include_router(api_router)


# ---- Local entrypoint
# In production, prefer: uvicorn things.main:app --host 0.0.0.0 --port 8000

if __name__ == "__main__":
    uvicorn.run(
        "things.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )
