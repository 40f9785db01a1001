from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging
from contextlib import asynccontextmanager

from schoolsync.core.config import settings
from schoolsync.core.database import close_db, init_db
from schoolsync.api.v1 import sync

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create the sync_state table
    await init_db()
    logger.info(f"{settings.APP_NAME} started")

    yield

    await close_db()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title="SchoolSync API",
    description="Student record extraction and change-only sync to Capsule",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync.router, prefix="/api/v1", tags=["sync"])


@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} API", "version": "1.0.0"}


if __name__ == "__main__":
    uvicorn.run(
        "schoolsync.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
