"""FastAPI application entry point."""

from dotenv import load_dotenv

load_dotenv()

import logging

from api.routes import batch, documents, health
from core import metrics
from core.error_handlers import (
    handle_app_error,
    handle_http_error,
    handle_pydantic_error,
    handle_unknown_error,
    handle_validation_error,
)
from core.lifespan import lifespan
from core.middleware import trace_id_middleware
from core.settings import app_settings
from core.validation import validate_all_settings
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pipeline.core.exceptions import BaseError
from pipeline.core.logging_config import configure_structured_logging
from pydantic_core import ValidationError as PydanticCoreValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
configure_structured_logging(level=app_settings.LOG_LEVEL, json_format=app_settings.LOG_JSON)
logger = logging.getLogger(__name__)

# Validate environment before starting application
validate_all_settings()

# Suppress known warnings
import urllib3

# Suppress urllib3 SSL verification warnings (S3 uses self-signed certs in dev)
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

# Initialize FastAPI app
app = FastAPI(
    title="Document Enhancement API",
    version=health.SERVICE_VERSION,
    description="OCR with image enhancement, AI text correction and batch document jobs",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# 1. Register Middleware
app.add_middleware(metrics.MetricsMiddleware)
app.middleware("http")(trace_id_middleware)

# 2. Register Exception Handlers
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(PydanticCoreValidationError, handle_pydantic_error)
app.add_exception_handler(StarletteHTTPException, handle_http_error)
app.add_exception_handler(BaseError, handle_app_error)
app.add_exception_handler(Exception, handle_unknown_error)

# Routes
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(batch.router)
app.include_router(documents.router)
