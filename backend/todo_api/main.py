from __future__ import annotations

import logging
import time

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import CredentialService
from .config import Settings
from .db import get_engine
from .deps import get_auth_service, get_todo_service, rate_limit, require_auth
from .errors import ConflictOrInvalid, DomainError, RateLimited
from .logs import setup_logging
from .models import Base
from .ratelimit import MemoryRateLimiter, RateLimiter, RedisRateLimiter
from .schemas import (
    CredentialsIn,
    LoginOut,
    RegisterOut,
    TodoChangedOut,
    TodoCreate,
    TodoCreatedOut,
    TodoListOut,
    TodoOut,
    TodoUpdate,
    UserOut,
)
from .services import AuthContext, AuthService, TodoService
from .stores import TodoStore, UserStore

logger = logging.getLogger(__name__)


def init_db(engine: Engine, attempts: int = 30) -> None:
    # Postgres in docker-compose might not be ready when the API boots.
    last_exc: Exception | None = None
    for i in range(attempts):
        try:
            Base.metadata.create_all(bind=engine)
            return
        except SQLAlchemyError as exc:
            last_exc = exc
            logger.warning("DB init failed, retrying", extra={"attempt": i + 1, "error": repr(exc)})
            time.sleep(1.0)
    raise RuntimeError(f"DB init failed after retries: {last_exc}")


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        return RedisRateLimiter.from_url(
            settings.redis_url,
            limit=settings.rate_limit_max,
            window_s=settings.rate_limit_window_seconds,
        )
    return MemoryRateLimiter(limit=settings.rate_limit_max, window_s=settings.rate_limit_window_seconds)


def request_url(request: Request) -> str:
    """Path plus query string, as the client sent it."""
    q = request.url.query
    return f"{request.url.path}?{q}" if q else request.url.path


def error_response(exc: DomainError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {
            "RateLimit-Limit": str(exc.limit),
            "RateLimit-Remaining": "0",
            "RateLimit-Reset": str(exc.reset_s),
            "Retry-After": str(exc.reset_s),
        }
    return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=headers)


auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", response_model=RegisterOut, status_code=201)
def register(body: CredentialsIn | None = None, svc: AuthService = Depends(get_auth_service)):
    body = body or CredentialsIn()
    u = svc.register(body.email, body.password)
    return RegisterOut(success=True, user=UserOut(id=u.id, email=u.email, token=u.token))


@auth_router.post("/login", response_model=LoginOut)
def login(body: CredentialsIn | None = None, svc: AuthService = Depends(get_auth_service)):
    body = body or CredentialsIn()
    return LoginOut(success=True, token=svc.login(body.email, body.password))


# auth routes are not rate limited; the to-do routes, "/" and unmatched paths are
todo_router = APIRouter(tags=["todos"], dependencies=[Depends(rate_limit)])


@todo_router.get("/todos", response_model=TodoListOut)
def list_todos(ctx: AuthContext = Depends(require_auth), svc: TodoService = Depends(get_todo_service)):
    res = svc.list(ctx)
    msg = "No todos found" if res.empty else "Todos Fetched Successfully"
    return TodoListOut(message=msg, todos=[TodoOut.of(t) for t in res.todos])


@todo_router.post("/todo", response_model=TodoCreatedOut, status_code=201)
def create_todo(
    body: TodoCreate | None = None,
    ctx: AuthContext = Depends(require_auth),
    svc: TodoService = Depends(get_todo_service),
):
    title = body.title if body is not None else None
    t = svc.create(ctx, title)
    return TodoCreatedOut(message="Todo Created Successfully", todo=TodoOut.of(t))


@todo_router.patch("/update/{todo_id}", response_model=TodoChangedOut)
def update_todo(
    todo_id: str,
    body: TodoUpdate | None = None,
    ctx: AuthContext = Depends(require_auth),
    svc: TodoService = Depends(get_todo_service),
):
    body = body or TodoUpdate()
    t = svc.update(ctx, todo_id, {"title": body.title, "completed": body.completed})
    return TodoChangedOut(message="Todo Updated Successfully", todos=TodoOut.of(t))


@todo_router.delete("/delete/{todo_id}", response_model=TodoChangedOut)
def delete_todo(
    todo_id: str,
    ctx: AuthContext = Depends(require_auth),
    svc: TodoService = Depends(get_todo_service),
):
    t = svc.delete(ctx, todo_id)
    return TodoChangedOut(message="Todo Deleted Successfully", todos=TodoOut.of(t))


def create_app(
    settings: Settings | None = None,
    *,
    engine: Engine | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Wire stores and services explicitly and hang them off ``app.state``."""
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
        setup_logging(settings.log_level)

    engine = engine or get_engine(settings.database_url, settings.db_timeout_seconds)
    init_db(engine)

    credentials = CredentialService(
        settings.jwt_secret,
        ttl_seconds=settings.jwt_ttl_seconds,
        rounds=settings.bcrypt_rounds,
    )

    app = FastAPI(title="Todo API")
    app.state.settings = settings
    app.state.engine = engine
    app.state.credentials = credentials
    app.state.auth_service = AuthService(UserStore(engine), credentials)
    app.state.todo_service = TodoService(TodoStore(engine))
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("Request received", extra={"method": request.method, "url": request_url(request)})
        return await call_next(request)

    @app.exception_handler(DomainError)
    async def domain_error(request: Request, exc: DomainError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        # unparseable bodies are a 400 like any other bad input
        if request.url.path == "/auth/register":
            err = ConflictOrInvalid()
            return JSONResponse(status_code=err.status_code, content=err.body())
        return JSONResponse(status_code=400, content={"message": "Invalid request body"})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            # unmatched paths count against the limit like the to-do routes
            try:
                rate_limit(request)
            except RateLimited as limited:
                return error_response(limited)
            return JSONResponse(status_code=404, content={"message": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})

    @app.get("/", response_class=PlainTextResponse, dependencies=[Depends(rate_limit)])
    def root():
        return "Server is running 🚀"

    @app.get("/healthz")
    async def healthz():
        # super cheap liveness probe
        return {"ok": True}

    @app.get("/health")
    def health(request: Request):
        try:
            with request.app.state.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            db_ok = True
        except SQLAlchemyError:
            db_ok = False
        limiter_ok = request.app.state.rate_limiter.ping()
        return JSONResponse(
            status_code=200 if db_ok else 503,
            content={"ok": db_ok and limiter_ok, "db": db_ok, "rate_limiter": limiter_ok},
        )

    app.include_router(auth_router)
    app.include_router(todo_router)
    return app


def run() -> None:
    import uvicorn

    load_dotenv()
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
