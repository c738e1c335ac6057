import logging
import math
import time
from typing import Any, Callable

from pydantic import ValidationError

from ..config import Settings
from ..errors import AuthError, ClientInputError, InternalError, ReplayOrExpiryError
from ..models.auth_models import ServerHello, ServerInfo, VerifyRequest, VerifyResponse
from ..nonce_store import NonceStore
from .credentials import CredentialIssuer
from .identity import verify_binding
from .typed_data import recover_signer

logger = logging.getLogger(__name__)


class ChallengeProtocolHandler:
    """
    Runs the challenge/verify exchange.

    Each verify call moves one attempt from Issued through Verifying to
    Verified or Rejected. The gates run in a fixed order, cheapest first,
    and the nonce is consumed before any cryptography so a payload can never
    be verified twice.
    """

    def __init__(self, settings: Settings, store: NonceStore, issuer: CredentialIssuer,
                 recover: Callable[..., str] = recover_signer,
                 clock: Callable[[], float] = time.time):
        self.settings = settings
        self.store = store
        self.issuer = issuer
        self._recover = recover
        self._clock = clock

    def issue_challenge(self, client_hello: Any = None) -> ServerHello:
        # The client hello may carry requested capabilities; none are supported yet
        challenge_id, nonce = self.store.issue()
        logger.info(f"Challenge issued: {challenge_id}")
        return ServerHello(
            ver=self.settings.protocol_version,
            nonce=nonce,
            server=ServerInfo(name=self.settings.server_name, url=self.settings.server_url),
            challengeId=challenge_id,
        )

    def verify(self, payload: Any) -> VerifyResponse:
        """Returns the credential on success; raises an AuthError subclass otherwise."""
        try:
            return self._verify(payload)
        except AuthError as e:
            logger.warning(f"Verification rejected ({type(e).__name__}): {e.reason}")
            raise
        except Exception as e:
            logger.error(f"Unexpected error during verification: {e}", exc_info=True)
            raise InternalError(reason=str(e)) from e

    def _verify(self, payload: Any) -> VerifyResponse:
        # (a) Required fields
        if not isinstance(payload, dict):
            raise ClientInputError(reason="request body is not a JSON object")
        try:
            request = VerifyRequest(**payload)
        except ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise ClientInputError(reason=f"missing or malformed field(s): {missing}") from e

        # (b) Nonce: consumed here, so any later failure still burns the attempt
        if not self.store.consume_if_matches(request.challengeId, request.nonce):
            raise ReplayOrExpiryError("Invalid or expired nonce",
                                      reason=f"no live challenge {request.challengeId} for that nonce")
        logger.info(f"Verifying challenge {request.challengeId}")

        # (c) Freshness of the signed payload
        message = request.signData.message
        created = self._parse_created(message.get("created"))
        now = self._clock()
        if abs(now - created) > self.settings.clock_skew_seconds:
            raise ReplayOrExpiryError("Signature timestamp out of range",
                                      reason=f"created={created}, now={int(now)}")
        if str(message.get("nonce", "")) != request.nonce:
            raise ReplayOrExpiryError("Invalid or expired nonce",
                                      reason="signed message carries a different nonce")

        # (d) Signature recovery
        recovered = self._recover(
            request.signData.domain, request.signData.types, message, request.proof.value
        )

        # (e) Address and DID binding
        identity = verify_binding(
            request.did, request.account, recovered,
            method=self.settings.did_method,
            case_sensitive=self.settings.did_case_sensitive,
        )

        token = self.issuer.issue(identity)
        logger.info(f"Verification success for {identity.address}")
        return VerifyResponse(token=token, did=identity.did, address=identity.address)

    @staticmethod
    def _parse_created(value: Any) -> float:
        try:
            created = float(str(value).strip())
        except (TypeError, ValueError):
            created = math.nan
        if not math.isfinite(created):
            raise ClientInputError("Invalid created timestamp", reason=f"created={value!r}")
        return created
