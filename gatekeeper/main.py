from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from gatekeeper.core import config
from gatekeeper.core.database.engine import AsyncSessionLocal, get_db, init_db
from gatekeeper.core.rate_limit import limiter
from gatekeeper.features.permissions.compiler import PermissionCompiler
from gatekeeper.features.permissions.documentation import filtered_openapi
from gatekeeper.features.permissions.errors import StoreUnavailableError
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.routes import router as permission_router
from gatekeeper.features.permissions.seed import seed_roles
from gatekeeper.features.users.routes import router as user_router
from gatekeeper.resources import DEFAULT_ROLES, build_resource_registry
from gatekeeper.utils import get_logger


log = get_logger(__name__)
log.info("Initializing gatekeeper")
app = FastAPI(
    title="Gatekeeper",
    description="Compiled role-based authorization service",
    version="0.1.0",
    # Served below, filtered by what DOCS_ROLE may call
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)
app.state.limiter = limiter

# One registry instance per application; role mutations call invalidate()
app.state.role_registry = RoleRegistry()
app.state.resource_registry = build_resource_registry()


class LogTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(f"{metric_name.removeprefix('gatekeeper.gatekeeper.features.')} took {timing:.4f}s {tags}")


app.add_middleware(TimingMiddleware, client=LogTimings(), metric_namer=StarletteScopeToName("gatekeeper", app))

if config.ENABLE_DOCS:
    log.warning(f"API docs are enabled for role {config.DOCS_ROLE}")
if config.ALLOW_ORIGIN:
    log.warning(f"CORS allowed for origin {config.ALLOW_ORIGIN}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.ALLOW_ORIGIN],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=[config.ACTOR_HEADER, "Content-Type"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    """Flatten pydantic errors to {"field.path": message} with status 400."""
    errors = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(location) or "request"] = error.get("msg", "invalid")
    log.info(f"Rejected request with invalid fields: {sorted(errors)}")
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": f"Rate limit exceeded: {exc.detail}"}, status_code=429)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> Response:
    log.error(f"Permission store unavailable during {request.method} {request.url.path}: {exc}")
    return JSONResponse({"detail": "Permission store unavailable"}, status_code=503)


async def rebuild_permission_store() -> None:
    """Seed the default roles and compile every registered matrix."""
    async with AsyncSessionLocal() as db:
        await seed_roles(db, DEFAULT_ROLES, app.state.role_registry)
        report = await PermissionCompiler(db, app.state.role_registry, app.state.resource_registry).compile_all()
    if not report.ok:
        log.error(f"Startup permission build reported failures: {report.as_dict()}")


@app.on_event("startup")
async def startup():
    await init_db()
    log.info("Database tables ready")

    if config.COMPILE_ON_STARTUP:
        await rebuild_permission_store()


@app.get("/")
async def root():
    return {
        "service": "gatekeeper",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "actor_header": config.ACTOR_HEADER,
        "models": [descriptor.name for descriptor in app.state.resource_registry.models()],
        "controllers": [descriptor.name for descriptor in app.state.resource_registry.controllers()],
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/openapi.json", include_in_schema=False)
async def openapi_document(request: Request, db: AsyncSession = Depends(get_db)):
    if not config.ENABLE_DOCS:
        raise HTTPException(status_code=404, detail="Not Found")
    return await filtered_openapi(
        request.app, db, request.app.state.role_registry, request.app.state.resource_registry, config.DOCS_ROLE
    )


@app.get("/docs", include_in_schema=False)
async def swagger_ui():
    if not config.ENABLE_DOCS:
        raise HTTPException(status_code=404, detail="Not Found")
    return get_swagger_ui_html(openapi_url="/openapi.json", title=f"{app.title} - Docs")


app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
