# seminar_registration/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from seminar_registration.api.errors import register_error_handlers
from seminar_registration.api.v1.api import api_router
from seminar_registration.core.config import settings
from seminar_registration.core.logging import setup_logging
from seminar_registration.scheduler import init_scheduler, shutdown_scheduler

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
    yield
    logger.info("Application shutting down...")
    shutdown_scheduler()


app = FastAPI(
    title="Seminar Registration Service",
    version="1.0.0",
    description="""
        Presenter registration for limited-capacity seminar slots.

        ## Features

        * **Registration**: weighted seats (PhD = 2, MSc = 1) with supervisor approval links
        * **Waiting List**: ordered backlog with time-boxed promotion offers
        * **Email Queue**: durable outbound email with retries and stuck-send recovery
        """,
    lifespan=lifespan,
)

register_error_handlers(app)
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Seminar Registration Service is running"}
