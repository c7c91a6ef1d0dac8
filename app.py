import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from backend import RedisBackend, create_redis_client
from broadcast import RedisBroadcaster
from constants import CORS_ORIGINS
from deps import Services, build_services
from errors import ChatError
from logging_config import get_logger, request_id_var, setup_logging
from routers.admin import admin_router
from routers.auth import auth_router
from routers.channels import channels_router
from routers.messages import messages_router
from routers.rooms import rooms_router
from routers.users import users_router
from services.ai_reply import create_ai_client

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the application. Passing `services` skips connecting to Redis."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is not None:
            app.state.services = services
            yield
            return

        redis_client = create_redis_client()
        store = RedisBackend(redis_client)
        app.state.services = build_services(store, RedisBroadcaster(redis_client), ai_client=create_ai_client())
        logger.info("Services initialized")
        try:
            yield
        finally:
            await store.close()
            logger.info("Redis connection closed")

    app = FastAPI(title="Chat Rooms API", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        token = request_id_var.set(uuid.uuid4().hex[:8])
        start = time.perf_counter()
        logger.info(f"{request.method} {request.url.path}")
        try:
            response = await call_next(request)
            logger.info(f"Request completed in {(time.perf_counter() - start) * 1000:.2f}ms")
            return response
        finally:
            request_id_var.reset(token)

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RedisError)
    async def redis_error_handler(request: Request, exc: RedisError):
        logger.error(f"Store error while handling {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(rooms_router)
    app.include_router(messages_router)
    app.include_router(users_router)
    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(channels_router)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
