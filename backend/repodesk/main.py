import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from dotenv import load_dotenv, find_dotenv

from repodesk.core.logging_config import setup_logging
from repodesk.exceptions import AppException
from repodesk.exception_handlers import app_exception_handler, unhandled_exception_handler

# Load environment variables
_ = load_dotenv(find_dotenv())

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    setup_logging()
    logger.info("repodesk API starting")

    yield

    logger.info("repodesk API stopping")


app = FastAPI(
    title="repodesk API",
    description="Chat front end backend: browse, edit and push files of GitHub repositories",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Import and register routers
from repodesk.api.routers import sessions, repos, files, health
app.include_router(sessions.router, prefix="/api")
app.include_router(repos.router, prefix="/api")
app.include_router(files.router, prefix="/api")
app.include_router(health.router, prefix="/api")


@app.get("/health")
async def root_health_check():
    """Root health check endpoint."""
    return {"status": "healthy"}
