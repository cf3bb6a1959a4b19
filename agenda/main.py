import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from agenda/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from agenda.core.config import settings, validate_config  # noqa: E402
from agenda.core.database import create_all_tables, dispose_engine  # noqa: E402
from agenda.core.logging import configure_logging  # noqa: E402
from agenda.core.middleware.metrics import MetricsMiddleware  # noqa: E402
from agenda.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from agenda.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from agenda.api import appointments, events, health, plans, professionals  # noqa: E402
from agenda.features.plans.service import seed_plans  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=settings.CONFIG_STRICT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("agenda")
    logger.info("Starting agenda backend...")
    app.state.startup_time = time.time()
    if settings.DATABASE_URL:
        create_all_tables()
        seeded = seed_plans()
        logger.info(f"Plans available: {', '.join(sorted(seeded))}")
    try:
        yield
    finally:
        logger.info("Stopping agenda backend...")
        if settings.DATABASE_URL:
            dispose_engine()


app = FastAPI(title="Agenda - Plans & Live Updates", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(plans.router, tags=["plans"])
app.include_router(professionals.router, tags=["professionals"])
app.include_router(appointments.router, tags=["appointments"])
app.include_router(events.router, tags=["realtime"])
app.include_router(health.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("agenda.main:app", host="0.0.0.0", port=8000, reload=settings.ENV == "development")
