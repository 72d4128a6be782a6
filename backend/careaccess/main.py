import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from careaccess.config import settings
from careaccess.middleware.exceptions import register_exception_handlers
from careaccess.middleware.organization import OrganizationContextMiddleware
from careaccess.routers import health, permissions, roles, seed, users
from careaccess.utils.cache import close_redis

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: release the Redis pool on shutdown."""
    logger.info(f"careaccess starting ({settings.environment})")
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(
    title="CareAccess",
    description="Multi-tenant authorization core: roles, permissions and effective-permission resolution",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Organization context (innermost - processes request data)
app.add_middleware(OrganizationContextMiddleware)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(permissions.router, prefix="/api/authz", tags=["permissions"])
app.include_router(roles.router, prefix="/api/authz", tags=["roles"])
app.include_router(users.router, prefix="/api/authz", tags=["users"])
app.include_router(seed.router, prefix="/api/authz", tags=["seed"])
