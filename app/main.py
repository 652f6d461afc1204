import logging
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from app.core.config import settings
from app.core.logging import configure_logging
from app.api.routes import router as api_router

configure_logging(settings.log_level)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    log.info("Starting API server...", extra={"work_dir": settings.work_dir, "stage": "-"})
    try:
        Path(settings.work_dir).mkdir(parents=True, exist_ok=True)
        log.info("API server startup complete", extra={"work_dir": settings.work_dir, "stage": "-"})
    except Exception as e:
        log.error("API startup failed: %s", e, exc_info=True, extra={"work_dir": settings.work_dir, "stage": "-"})
        raise
    yield
    # Shutdown
    log.info("Shutting down API server...", extra={"work_dir": settings.work_dir, "stage": "-"})


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    lifespan=lifespan
)
app.include_router(api_router, prefix="/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.api_host, port=settings.api_port)
