import logging
import os
import sys
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from nextspark/.env and the project root
package_dir = os.path.dirname(os.path.abspath(__file__))
parent_dir = os.path.dirname(package_dir)
if "PYTEST_CURRENT_TEST" not in os.environ:
    for env_file in (".env", ".env.local"):
        load_dotenv(dotenv_path=os.path.join(parent_dir, env_file))
        load_dotenv(dotenv_path=os.path.join(package_dir, env_file))

if parent_dir not in sys.path:
    sys.path.insert(0, parent_dir)

from nextspark.core.config import settings, validate_config
from nextspark.core.logging import configure_logging
from nextspark.core.middleware.request_id import RequestIdMiddleware
from nextspark.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from nextspark.core.database import create_all_tables
from nextspark.api import ai, api_keys, billing, cron, customers, health, pages, patterns, tasks, teams, users
from nextspark.features.billing.service import seed_plans
from nextspark.features.webhooks.service import register_webhook_actions

API_PREFIX = "/api/v1"

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("nextspark")
    logger.info("Starting NextSpark backend...")
    app.state.startup_time = time.time()
    create_all_tables()
    seed_plans()
    register_webhook_actions()
    try:
        yield
    finally:
        logger.info("Stopping NextSpark backend...")


app = FastAPI(title="NextSpark API", version="0.1.0", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(health.router)
for module in (users, teams, tasks, customers, pages, patterns, billing, api_keys, cron, ai):
    app.include_router(module.router, prefix=API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("nextspark.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=False)
