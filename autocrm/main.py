import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from autocrm.config import Settings, settings as default_settings
from autocrm.core.errors import RpcError
from autocrm.database.supabase_client import SupabaseClients
from autocrm.modules.auth import routes as auth_routes
from autocrm.modules.auth.service import TokenCache
from autocrm.rpc import routes as rpc_routes
from autocrm.rpc.procedures import build_registry

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


def create_app(settings: Optional[Settings] = None, supabase: Optional[SupabaseClients] = None) -> FastAPI:
    """
    Build one application instance. The Supabase clients, the token cache and the
    procedure registry all live on app.state, so two apps never share them.
    """
    settings = settings or default_settings
    configure_logging(settings)

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        redirect_slashes=False,
    )
    app.state.settings = settings
    app.state.supabase = supabase or SupabaseClients(settings)
    app.state.token_cache = TokenCache(settings.auth_cache_ttl_sec, settings.auth_cache_max_size)
    app.state.rpc_registry = build_registry()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(RpcError)
    async def rpc_error_handler(request: Request, exc: RpcError):
        return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        if settings.is_production:
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_routes.router, prefix="/api/v1")
    app.include_router(rpc_routes.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Application startup ({settings.environment}), {len(app.state.rpc_registry.names())} procedures")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Application shutdown")

    @app.get("/")
    async def root():
        return {"message": f"Welcome to {settings.app_name}", "status": "healthy"}

    @app.get("/health")
    @limiter.exempt
    async def health():
        return {"status": "healthy"}

    @app.get("/ready")
    @limiter.exempt
    async def ready():
        """Readiness probe: the registry is built and Supabase is configured."""
        if not settings.supabase_url:
            return JSONResponse(status_code=503, content={"status": "not ready", "reason": "supabase_url is not set"})
        return {"status": "ready"}

    return app


app = create_app()
