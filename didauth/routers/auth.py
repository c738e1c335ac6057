from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer  # For JWT extraction
from typing import Any
import logging

from ..errors import AuthError, CryptographicError, InternalError
from ..models.auth_models import ServerHello, SessionResponse, VerifyResponse
from ..models.data_models import ErrorResponse
from ..services.challenge import ChallengeProtocolHandler
from ..services.credentials import CredentialIssuer, SessionClaims

# --- JWT Configuration ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/verify", auto_error=False)

router = APIRouter(
    prefix="/api",
    tags=["Authentication (DID wallet)"],
)

logger = logging.getLogger(__name__)


# --- Dependencies ---
def get_handler(request: Request) -> ChallengeProtocolHandler:
    return request.app.state.handler


def get_issuer(request: Request) -> CredentialIssuer:
    return request.app.state.issuer


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Uniform `{"message": ...}` body for every rejection."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)


# --- API Endpoints ---
@router.post("/challenge", response_model=ServerHello)
def issue_challenge(
    client_hello: Any = Body(None),
    handler: ChallengeProtocolHandler = Depends(get_handler),
):
    """
    Issues a one-time challenge (ServerHello) for the wallet to sign.

    The request body is the client hello; its content is ignored.
    """
    try:
        return handler.issue_challenge(client_hello)
    except Exception as e:
        logger.error(f"Unexpected error issuing challenge: {e}", exc_info=True)
        raise InternalError("Challenge error", reason=str(e)) from e


@router.post(
    "/verify",
    response_model=VerifyResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
def verify(
    payload: Any = Body(None),
    handler: ChallengeProtocolHandler = Depends(get_handler),
):
    """
    Verifies a signed challenge response and returns a session credential.

    - **nonce** / **challengeId**: from the ServerHello.
    - **did** / **account**: the identity being claimed.
    - **proof.value**: the wallet's typed-data signature.
    - **signData**: the EIP-712 payload that was signed.

    The body is taken as raw JSON so missing fields produce 400, not 422.
    """
    return handler.verify(payload)


# --- Secure Dependency for Authenticated User ---
def get_current_identity(
    token: str | None = Depends(oauth2_scheme),
    issuer: CredentialIssuer = Depends(get_issuer),
) -> SessionClaims:
    """
    Validates the bearer credential and returns its claims.
    Raises CryptographicError (401) if the token is missing, invalid or expired.
    """
    if not token:
        raise CryptographicError("Could not validate credentials", reason="no bearer token")
    try:
        return issuer.decode(token)
    except AuthError as e:
        logger.warning(f"Credential rejected: {e.reason}")
        raise


@router.get("/session", response_model=SessionResponse, responses={401: {"model": ErrorResponse}})
def read_session(claims: SessionClaims = Depends(get_current_identity)):
    """Echoes the identity asserted by a valid session credential."""
    return SessionResponse(did=claims.sub, address=claims.addr, expiresAt=claims.exp)
