import logging
import time
from datetime import timedelta
from typing import Callable

from jose import JWTError, jwt  # For JWT handling
from pydantic import BaseModel, ValidationError

from ..errors import CryptographicError, IdentityMismatchError, InternalError
from .identity import DEFAULT_DID_METHOD, Identity, address_from_did

logger = logging.getLogger(__name__)


# --- Token Payload Model ---
class SessionClaims(BaseModel):
    sub: str  # Subject: the server-derived DID
    addr: str
    iat: int
    exp: int


class CredentialIssuer:
    """Mints short-lived, stateless session tokens. Nothing is stored server-side."""

    def __init__(self, secret_key: str | None, algorithm: str = "HS256",
                 lifetime: timedelta = timedelta(minutes=15),
                 did_method: str = DEFAULT_DID_METHOD,
                 clock: Callable[[], float] = time.time):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.lifetime = lifetime
        self.did_method = did_method
        self._clock = clock

    def issue(self, identity: Identity) -> str:
        if not self.secret_key:
            # Configuration error; the client only sees a generic failure
            raise InternalError(reason="JWT_SECRET_KEY is not configured")
        now = int(self._clock())
        claims = {
            "sub": identity.did,
            "addr": identity.address,
            "iat": now,
            "exp": now + int(self.lifetime.total_seconds()),
        }
        token = jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        logger.info(f"Session credential issued for {identity.address} (expires {claims['exp']})")
        return token

    def decode(self, token: str) -> SessionClaims:
        """Verifies signature, expiry and the DID/address pairing of a credential."""
        if not self.secret_key:
            raise InternalError(reason="JWT_SECRET_KEY is not configured")
        try:
            payload = jwt.decode(
                token, self.secret_key, algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
            claims = SessionClaims(**payload)
        except JWTError as e:
            raise CryptographicError("Could not validate credentials", reason=f"JWT error: {e}") from e
        except (ValidationError, TypeError) as e:
            raise CryptographicError("Could not validate credentials", reason=f"bad claims: {e}") from e

        # Expiry is checked against our own clock so tests can move time
        if claims.exp <= int(self._clock()):
            raise CryptographicError("Could not validate credentials", reason="credential expired")
        try:
            if address_from_did(claims.sub, self.did_method) != claims.addr:
                raise CryptographicError("Could not validate credentials", reason="sub/addr disagree")
        except IdentityMismatchError as e:
            raise CryptographicError("Could not validate credentials", reason=e.reason) from e
        return claims
