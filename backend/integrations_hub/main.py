from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded as SlowApiRateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from integrations_hub.api import api_keys, integrations, webhooks
from integrations_hub.api.schemas import error_body
from integrations_hub.core.config import settings
from integrations_hub.core.exceptions import IntegrationsError
from integrations_hub.core.logging import setup_logging, log_request
import logging
import time
import traceback

setup_logging(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)

app = FastAPI(
    title="Integrations Hub",
    description="Third-party integrations, provider syncs, outbound webhooks and API keys for restaurant locations",
    version="1.0.0"
)

app.state.limiter = limiter
app.add_exception_handler(SlowApiRateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(IntegrationsError)
async def integrations_error_handler(request: Request, exc: IntegrationsError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{field}: {error.get('msg')}" if field else error.get("msg", "invalid"))
    return JSONResponse(status_code=422, content=error_body("; ".join(details) or "Invalid request"))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)), headers=exc.headers)


# Unhandled exceptions still answer in the error envelope
class ErrorEnvelopeMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {str(e)}\n{traceback.format_exc()}")
            return JSONResponse(status_code=500, content=error_body("Internal server error"))


app.add_middleware(ErrorEnvelopeMiddleware)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    log_request(
        logger,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
        ip_address=request.client.host if request.client else None,
    )

    return response


# Sub-resource routers first: /api/integrations/{integration_id} would shadow them
app.include_router(webhooks.router)
app.include_router(api_keys.router)
app.include_router(integrations.router)


@app.on_event("startup")
async def startup_event():
    logger.info("Application starting up", extra={'event': 'startup'})


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutting down", extra={'event': 'shutdown'})


@app.get("/")
def root():
    return {
        "message": "Integrations Hub API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    logger.debug("Health check performed")
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
