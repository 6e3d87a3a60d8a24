from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockit.config import settings
from stockit.middleware.exceptions import register_exception_handlers
from stockit.middleware.rate_limit import RateLimitMiddleware
from stockit.middleware.security import SecurityHeadersMiddleware
from stockit.routers import (
    admin,
    auth,
    categories,
    health,
    history,
    invitations,
    items,
    organizations,
    stores,
    users,
)
from stockit.services.scheduler import lifespan

app = FastAPI(
    title="StockIT",
    description="Multi-tenant store inventory tracking",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (innermost first; the last one added wraps the rest) ──
app.add_middleware(
    RateLimitMiddleware,
    default_limit=100,  # 100 requests per minute per user / IP
    default_window=60,
    exempt_paths=["/health", "/docs", "/openapi.json"],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Outermost, so 429s and error responses carry the headers too
app.add_middleware(SecurityHeadersMiddleware)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(organizations.router, prefix="/api/organizations", tags=["organizations"])
app.include_router(stores.router, prefix="/api/stores", tags=["stores"])
app.include_router(items.router, prefix="/api/items", tags=["items"])
app.include_router(history.router, prefix="/api/history", tags=["history"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(invitations.router, prefix="/api/invitations", tags=["invitations"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
