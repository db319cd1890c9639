import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from auth.routes import router as auth_router
from auth.security import TokenService, hash_password
from config import Settings
from database import Database
import models
from errors import register_exception_handlers
from rate_limit import setup_rate_limiting
import schemas
from tasks.routes import router as tasks_router
from time_utils import utc_now
from users.routes import router as users_router

logger = logging.getLogger(__name__)

MIN_ADMIN_PASSWORD_LENGTH = 8

# Baseline hardening headers sent on every response
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}
HSTS_HEADER = "max-age=15552000; includeSubDomains"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def add_security_headers(app: FastAPI, settings: Settings) -> None:
    """Set the hardening headers on every response; HSTS only where cookies are secure."""
    headers = dict(SECURITY_HEADERS)
    if settings.is_production_like:
        headers["Strict-Transport-Security"] = HSTS_HEADER

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response


# ============== Startup: Ensure Admin User Exists ==============

def ensure_admin_user(database: Database, settings: Settings) -> Optional[models.User]:
    """
    Ensure the configured admin account exists.

    Does nothing unless both ADMIN_EMAIL and ADMIN_PASSWORD are set. In
    production-like environments a password shorter than eight characters
    aborts startup.
    """
    if not settings.admin_email or not settings.admin_password:
        logger.debug("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin seeding")
        return None

    admin_email = settings.admin_email.strip().lower()
    admin_password = settings.admin_password.strip()

    if len(admin_password) < MIN_ADMIN_PASSWORD_LENGTH:
        if settings.is_production_like:
            logger.error(
                "=" * 80 + "\n"
                "❌ STARTUP FAILED: ADMIN_PASSWORD must be at least 8 characters long!\n"
                "❌ Example: ADMIN_PASSWORD=$(openssl rand -base64 32)\n" +
                "=" * 80
            )
            raise RuntimeError("ADMIN_PASSWORD is too weak for a production-like environment")
        logger.warning(
            "⚠️  SECURITY WARNING: ADMIN_PASSWORD is shorter than 8 characters. "
            "This is OK for local development but will abort startup in production."
        )

    db = database.session()
    try:
        admin = db.query(models.User).filter(models.User.email == admin_email).first()
        if admin:
            logger.info(f"Admin user already exists (email: {admin_email})")
            return admin

        admin = models.User(
            name="Admin",
            email=admin_email,
            role=models.UserRole.admin,
            password_hash=hash_password(admin_password),
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        logger.info(f"✅ Admin user created: {admin_email} (ID: {admin.id})")
        return admin
    finally:
        db.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the TaskFlow API from an explicit settings object.

    The database handle lives for the lifespan of the app: tables are ensured
    and the admin account seeded on startup, and the engine is disposed on
    shutdown.
    """
    settings = settings or Settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = Database(settings.database_url)
        database.create_all()
        app.state.db = database
        try:
            ensure_admin_user(database, settings)
            logger.info(f"TaskFlow API started (environment: {settings.environment})")
            yield
        finally:
            database.dispose()

    app = FastAPI(
        title="TaskFlow API",
        description="Personal task management: accounts, tasks, bulk updates and statistics",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.tokens = TokenService.from_settings(settings)

    register_exception_handlers(app, settings.is_development)
    setup_rate_limiting(app, settings)
    add_security_headers(app, settings)

    # CORS middleware for frontend; credentials are needed for the auth cookie.
    # Added last so it also wraps rate-limited responses.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(tasks_router)
    app.include_router(users_router)

    @app.get("/api/health", response_model=schemas.HealthResponse, tags=["health"])
    def health_check():
        return {
            "message": "Server is running!",
            "timestamp": utc_now().isoformat(),
            "environment": settings.environment,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
