import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load env before settings are imported
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from fastapi import FastAPI, HTTPException

from aisaint.api import chat, health, metrics
from aisaint.core.config import settings, validate_config
from aisaint.core.database import create_all_tables, create_engine, create_session_factory
from aisaint.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from aisaint.core.logging import configure_logging
from aisaint.core.middleware.metrics import MetricsMiddleware
from aisaint.core.middleware.request_id import RequestIdMiddleware
from aisaint.core.middleware.tracing import TracingMiddleware
from aisaint.core.tracing import setup_tracing
from aisaint.core.validation import validate_env
from aisaint.features.ai.service import ResponseGenerator
from aisaint.features.chat.service import ChatService
from aisaint.features.conversations.store import ConversationStore
from aisaint.features.entitlements.service import EntitlementResolver
from aisaint.features.history.service import HistoryService
from aisaint.features.usage.service import QuotaEnforcer

configure_logging(settings.ENV)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("aisaint")
    logger.info("Starting AI Saint backend...")

    validate_env()
    validate_config(strict=getattr(settings, "CONFIG_STRICT", False))
    setup_tracing(enabled=settings.OTEL_ENABLED)

    engine = create_engine(app.state.database_url)
    await create_all_tables(engine)
    store = ConversationStore(create_session_factory(engine))
    generator = app.state.generator or ResponseGenerator(settings.GROQ_API_KEY)

    app.state.engine = engine
    app.state.store = store
    app.state.chat_service = ChatService(
        store=store,
        resolver=EntitlementResolver.default(store),
        quota=QuotaEnforcer(store),
        generator=generator,
    )
    app.state.history_service = HistoryService(store)
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Stopping AI Saint backend...")


def create_app(database_url: Optional[str] = None, generator: Optional[ResponseGenerator] = None) -> FastAPI:
    """Build the API app. Services are constructed in the lifespan.

    Args:
        database_url: Override DATABASE_URL / TEST_DATABASE_URL
        generator: Replace the Groq-backed generator (tests)
    """
    app = FastAPI(title="AI Saint - Backend", lifespan=lifespan)
    app.state.database_url = database_url
    app.state.generator = generator

    app.add_middleware(MetricsMiddleware)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(chat.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    return app


app = create_app()
