import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware

import livestockway.core.config as config
from livestockway.core.logging import configure_logging, request_id_var
from livestockway.core.queue import build_task_queue
from livestockway.routers.payments import api as payments_api
from livestockway.services.stripe_service import StripeGateway

log_level = configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


def _token_subject(auth_header: str):
    # Only for log context; the auth dependency does the real verification
    token = auth_header.split(' ', 1)[1].strip() if ' ' in auth_header else auth_header
    try:
        return jwt.get_unverified_claims(token).get("sub")
    except JWTError:
        return None


# Request logging middleware with request ID tracking
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Generate unique request ID for tracking
        request_id = str(uuid.uuid4())[:8]  # Short ID for readability
        request_id_var.set(request_id)
        request.state.request_id = request_id

        start_time = time.time()

        user_id = None
        auth_header = request.headers.get('authorization') or request.headers.get('Authorization')
        if auth_header:
            user_id = _token_subject(auth_header)

        query_str = f"?{request.url.query}" if request.query_params else ""
        logger.info(
            f"REQUEST | id={request_id} | method={request.method} | path={request.url.path}{query_str} | "
            f"user_id={user_id or 'anonymous'} | ip={request.client.host if request.client else 'unknown'}"
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(
                f"RESPONSE | id={request_id} | method={request.method} | path={request.url.path} | "
                f"status={response.status_code} | time={process_time:.3f}s | user_id={user_id or 'anonymous'}"
            )

            # Add request ID to response headers for client tracking
            response.headers["X-Request-ID"] = request_id

            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"ERROR | id={request_id} | method={request.method} | path={request.url.path} | "
                f"error={type(e).__name__}: {str(e)} | time={process_time:.3f}s | user_id={user_id or 'anonymous'}",
                exc_info=True
            )
            raise


def create_app(*, stripe_gateway=None, task_queue=None) -> FastAPI:
    app = FastAPI(
        title=config.APP_NAME,
        description="Stripe webhook reconciliation, hauler subscriptions and escrow payments for LivestockWay",
        version=config.APP_VERSION,
    )

    # One configured Stripe client and queue per process
    app.state.stripe_gateway = stripe_gateway or StripeGateway.from_config()
    app.state.task_queue = task_queue or build_task_queue()

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*", "Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"]
    )

    @app.get("/")
    async def read_root():
        return {
            "status": "online",
            "message": "LivestockWay Payments",
            "version": config.APP_VERSION,
            "environment": config.ENVIRONMENT,
        }

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    app.include_router(payments_api.router, prefix="/api")
    return app


app = create_app()
