import logging

from fastapi import FastAPI

from api.router import api_router
from core.errors import register_exception_handlers
from core.logging_config import setup_logging
from core.settings import settings
from services.gateway import build_gateway

APP_TITLE = "Unjob Subscriptions & Payments"

setup_logging(log_level=settings.log_level, log_dir=settings.log_dir)
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_TITLE)

app.state.gateway = build_gateway(settings)

register_exception_handlers(app)

app.include_router(api_router, prefix="/api")

logger.info(f"{APP_TITLE} started (env={settings.app_env})")


@app.get("/health")
def health():
    return {"status": "ok", "payments": app.state.gateway is not None}
