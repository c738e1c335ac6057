from datetime import timedelta
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging # Add logging config

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

from .config import Settings, load_settings
from .errors import AuthError
from .nonce_store import InMemoryNonceStore, NonceStore
from .routers import auth
from .services.challenge import ChallengeProtocolHandler
from .services.credentials import CredentialIssuer

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, store: NonceStore | None = None) -> FastAPI:
    """
    Builds the application with explicit collaborators.

    Tests pass their own settings/store; production reads the environment.
    """
    settings = settings or load_settings()
    store = store or InMemoryNonceStore(ttl_seconds=settings.nonce_expiration_seconds)
    issuer = CredentialIssuer(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        lifetime=timedelta(minutes=settings.jwt_access_token_expire_minutes),
        did_method=settings.did_method,
    )

    app = FastAPI(
        title="DID Wallet Auth",
        description="Challenge/response login with EIP-712 wallet signatures bound to a DID.",
        version="0.1.0"
    )
    app.state.settings = settings
    app.state.store = store
    app.state.issuer = issuer
    app.state.handler = ChallengeProtocolHandler(settings, store, issuer)

    # --- CORS Configuration ---
    # The login page is served from a different origin than the API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthError, auth.auth_error_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Routing errors (404, 405) share the {"message"} body shape
        return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Unparseable bodies get the same uniform 400 as missing fields
        logger.warning(f"Request validation failed on {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"message": "Bad request"})

    # Include routers
    app.include_router(auth.router)

    @app.get("/", tags=["Health Check"])
    def read_root():
        """Root endpoint for health check."""
        return {"status": "ok", "message": "DID wallet auth is running"}

    logger.info(f"Auth server configured for {settings.server_name} ({settings.server_url})")
    return app


# --- Server Startup (for local development) ---
if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
