# app/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Your configuration and DB
from app.config import settings
from app.core.db import init_db, close_db
from app.core.errors import register_error_handlers
from app.core.bootstrap import ensure_default_roles, ensure_default_superadmin

from app.api.v1.routers import auth, password, roles, users, oauth, tokens

from app.services.container import TokenSweeper, build_services

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title=settings.APP_NAME)

# CORS (with Cookie)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Services are wired once; tests may replace app.state.services
app.state.services = build_services(settings, logger)
app.state.sweeper = None


@app.on_event("startup")
async def on_startup():
    await init_db()
    services = app.state.services
    # Canonical roles must exist before anyone can register
    await ensure_default_roles(services.roles)
    # Ensure there's a default superadmin account on first run
    await ensure_default_superadmin(settings)
    app.state.sweeper = TokenSweeper(services.tokens, settings.token_sweep_interval_seconds, logger)
    app.state.sweeper.start()


@app.on_event("shutdown")
async def on_shutdown():
    if app.state.sweeper is not None:
        await app.state.sweeper.stop()
    await close_db()


# REST
app.include_router(auth.router, prefix="/api/v1")
app.include_router(password.router, prefix="/api/v1")
app.include_router(roles.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(oauth.router, prefix="/api/v1")
app.include_router(tokens.router, prefix="/api/v1")


@app.get("/healthz")
def healthz():
    return {"ok": True}
