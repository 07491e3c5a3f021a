from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from multimeter.api.v1 import router as api_router
from multimeter.core.config import settings
from multimeter.core.logging_config import get_logger
from multimeter.services.metrics.reporter import start_metrics_reporter, stop_metrics_reporter

logger = get_logger("app")


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Startup
    logger.info(f"Starting {settings.PROJECT_NAME} {settings.VERSION}")
    start_metrics_reporter()

    yield

    # Shutdown
    stop_metrics_reporter()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="In-process metrics registry exporter",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(api_router)
