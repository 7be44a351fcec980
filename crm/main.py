from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from crm.core import config
from crm.core.database.engine import init_db
from crm.features.accounts.routes import router as account_router
from crm.features.activities.routes import router as activity_router
from crm.features.contacts.routes import router as contact_router
from crm.features.deals.routes import router as deal_router
from crm.features.organizations.routes import router as organization_router
from crm.features.permissions.dependencies import get_evaluator
from crm.features.permissions.errors import Forbidden, IdentityLookupFailure, Unauthenticated
from crm.features.permissions.routes import router as permission_router
from crm.features.projects.routes import router as project_router
from crm.features.tasks.routes import router as task_router
from crm.features.users.dependencies import rate_limit_key
from crm.features.users.routes import router as user_router
from crm.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="CRM Backend",
    description="Multi-tenant CRM API with role and organization scoped authorization",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[config.RATE_LIMIT] if config.RATE_LIMIT else [],
)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.crm.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def wants_html(request: Request) -> bool:
    """Browser navigations get redirects; API clients get JSON."""
    return "text/html" in request.headers.get("accept", "")


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> Response:
    if wants_html(request):
        return RedirectResponse(config.LOGIN_URL, status_code=303)
    return JSONResponse(
        status_code=401,
        content={"success": False, "error": exc.message, "redirect": config.LOGIN_URL},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(Forbidden)
async def forbidden_handler(request: Request, exc: Forbidden) -> Response:
    if wants_html(request):
        return RedirectResponse(config.UNAUTHORIZED_URL, status_code=303)
    return JSONResponse(
        status_code=403,
        content={"success": False, "error": exc.message, "redirect": config.UNAUTHORIZED_URL},
    )


@app.exception_handler(IdentityLookupFailure)
async def identity_lookup_failure_handler(request: Request, exc: IdentityLookupFailure) -> Response:
    log.error("Identity backend unavailable for %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": "Authentication service unavailable"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Validate the permission table and initialize the database."""
    evaluator = get_evaluator()
    log.info("Role permission table version %s loaded", evaluator.table.version)
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "CRM Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require a session token (Bearer header or session cookie)",
            "login_url": config.LOGIN_URL,
        },
        "features": {
            "permissions": "Role hierarchy SUPER_ADMIN > OWNER > ADMIN > USER with scoped permissions",
            "organizations": "Tenant isolation for every CRM resource",
            "accounts": "Accounts with explicit members",
            "contacts": "Contacts attached to accounts",
            "deals": "Deal pipeline with assignees",
            "projects": "Projects with members",
            "tasks": "Tasks and subtasks with assignees",
            "activities": "Activity log of every change"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(organization_router, prefix="/organizations", tags=["organizations"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
app.include_router(account_router, prefix="/accounts", tags=["accounts"])
app.include_router(contact_router, prefix="/contacts", tags=["contacts"])
app.include_router(deal_router, prefix="/deals", tags=["deals"])
app.include_router(project_router, prefix="/projects", tags=["projects"])
app.include_router(task_router, prefix="/tasks", tags=["tasks"])
app.include_router(activity_router, prefix="/activities", tags=["activities"])
