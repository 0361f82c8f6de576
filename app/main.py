import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.cache import cache
from app.config import settings
from app.errors import ApiError, PersistenceFailure
from app.middleware import AccessLogMiddleware
from app.routers import articles, categories, comments, profiles, users

VERSION = "1.0.0"

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await cache.connect()
    logger.info("Blog API started (env=%s)", settings.APP_ENV)
    yield
    await cache.disconnect()


app = FastAPI(
    title="Blog API",
    description="Users, profiles, articles, categories and comments behind an authorization pipeline",
    version=VERSION,
    lifespan=lifespan,
)

# Middleware
app.add_middleware(AccessLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error envelope: {"success": false, "errors": [...]}
# ---------------------------------------------------------------------------

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.errors[0])
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Reads and pipeline lookups do not wrap their queries.
    return await api_error_handler(request, PersistenceFailure(str(exc)))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "errors": [str(exc.detail)]},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"][1:]) or error["loc"][0]
        errors.append(f"{location}: {error['msg']}")
    return JSONResponse(status_code=422, content={"success": False, "errors": errors})


# Routers
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(categories.router)
app.include_router(articles.router)
app.include_router(comments.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION, "cache": cache.stats}
