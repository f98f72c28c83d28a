import logging
import sys
import time
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI, APIRouter, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import setup_error_handlers, DashboardError
from .db import db, get_db
from .schemas import LoginRequest, MessageResponse, RegisterRequest, UserEnvelope, UserOut
from .auth import (
    clear_auth_cookie,
    create_access_token,
    hash_password,
    normalize_email,
    set_auth_cookie,
    verify_password,
)
from .deps import get_current_user
from .config import settings
from .habits import router as habits_router
from .projects import router as projects_router
from .analytics import router as analytics_router
from .repositories import fetch_user_by_email, insert_user
from .observability import (
    REQUEST_ID_HEADER,
    reset_request_context,
    set_request_context,
    duration_ms,
    generate_request_id,
    log_ctx,
    log_ctx_json,
    validate_request_id,
)

SERVICE_NAME = "pulseboard-api"
SERVICE_VERSION = "0.1.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(SERVICE_NAME)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Pulseboard API...")
    if settings.is_production():
        logger.info("security mode: production strict enabled")
    logger.info(
        "Startup CORS config: origins=%s origin_regex=%s",
        settings.get_cors_allow_origins(),
        settings.get_cors_allow_origin_regex() or "",
    )
    # Fails fast on an unknown APP_TIMEZONE
    timezone = settings.get_timezone()
    logger.info("Dashboard day boundary: timezone=%s", timezone or "server-local")
    await db.create_pool()
    yield
    # Shutdown
    logger.info("Shutting down Pulseboard API...")
    await db.close_pool()

app = FastAPI(
    title="Pulseboard API",
    description="Backend for the Pulseboard productivity dashboard",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_allow_origins(),
    allow_origin_regex=settings.get_cors_allow_origin_regex(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.middleware("http")
async def request_observability_middleware(request: Request, call_next):
    started_at = time.monotonic()

    incoming_request_id = request.headers.get(REQUEST_ID_HEADER)
    if incoming_request_id is None:
        request_id = generate_request_id()
    else:
        if not validate_request_id(incoming_request_id):
            request_id = generate_request_id()
            request.state.request_id = request_id
            response = JSONResponse(
                status_code=400,
                content={
                    "error": {
                        "code": "VALIDATION_FAILED",
                        "message": "Invalid request data",
                        "details": {
                            "fieldErrors": [
                                {
                                    "field": "header.X-Request-Id",
                                    "issue": "must be non-empty and <= 128 chars",
                                }
                            ]
                        },
                    }
                },
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.warning(
                "REQUEST_REJECTED context=%s",
                log_ctx_json(
                    log_ctx(
                        request,
                        extra={
                            "status_code": 400,
                            "duration_ms": duration_ms(started_at),
                            "reason": "invalid_x_request_id",
                        },
                    )
                ),
            )
            return response
        request_id = incoming_request_id.strip()

    request.state.request_id = request_id
    context_tokens = set_request_context(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "REQUEST_DONE context=%s",
            log_ctx_json(
                log_ctx(
                    request,
                    extra={
                        "status_code": response.status_code,
                        "duration_ms": duration_ms(started_at),
                    },
                )
            ),
        )
        return response
    finally:
        reset_request_context(context_tokens)

# Setup custom error handlers
setup_error_handlers(app)

auth_router = APIRouter(prefix="/api/auth", tags=["Auth"])


def format_user(user_dict: dict) -> UserOut:
    return UserOut(
        id=str(user_dict["id"]),
        email=user_dict["email"],
        name=user_dict.get("name"),
    )


def _issue_session(response: Response, user: UserOut) -> None:
    token = create_access_token({"sub": user.id, "email": user.email, "name": user.name})
    set_auth_cookie(response, token)


@auth_router.post("/register", response_model=UserEnvelope, status_code=201)
async def register(payload: RegisterRequest, request: Request, response: Response, conn=Depends(get_db)):
    email = normalize_email(payload.email)
    if not email or not payload.password:
        raise DashboardError(
            code="VALIDATION_FAILED",
            message="Email and password are required",
            status_code=400,
        )

    existing = await fetch_user_by_email(conn, email)
    if existing is not None:
        logger.info("Registration rejected, user exists context=%s", log_ctx_json(log_ctx(request)))
        raise DashboardError(code="USER_EXISTS", message="User already exists", status_code=400)

    try:
        row = await insert_user(conn, email, hash_password(payload.password), payload.name)
    except asyncpg.UniqueViolationError:
        row = None
    if row is None:
        # Lost a race against a concurrent registration
        raise DashboardError(code="USER_EXISTS", message="User already exists", status_code=400)

    user = format_user(dict(row))
    _issue_session(response, user)
    logger.info("USER_REGISTERED context=%s", log_ctx_json(log_ctx(request, user_id=user.id)))
    return UserEnvelope(user=user)


@auth_router.post("/login", response_model=UserEnvelope)
async def login(payload: LoginRequest, request: Request, response: Response, conn=Depends(get_db)):
    row = await fetch_user_by_email(conn, normalize_email(payload.email))
    if row is None or not verify_password(payload.password, row["password_hash"]):
        logger.info("Login rejected context=%s", log_ctx_json(log_ctx(request)))
        raise DashboardError(code="INVALID_CREDENTIALS", message="Invalid credentials", status_code=400)

    user = format_user(dict(row))
    _issue_session(response, user)
    logger.info("USER_LOGGED_IN context=%s", log_ctx_json(log_ctx(request, user_id=user.id)))
    return UserEnvelope(user=user)


@auth_router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    clear_auth_cookie(response)
    return MessageResponse(message="Logged out successfully")


@auth_router.get("/me", response_model=UserEnvelope)
async def get_me(user=Depends(get_current_user)):
    return UserEnvelope(user=format_user(user))


@app.get("/health", tags=["Health"])
async def health_check():
    db_status = await db.db_check()
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "db": db_status
    }

app.include_router(auth_router)
app.include_router(habits_router)
app.include_router(projects_router)
app.include_router(analytics_router)
