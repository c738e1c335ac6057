import os
import logging
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Runtime configuration, built once and passed to the handler and issuer."""

    # Server identity, echoed in ServerHello so the wallet can bind the domain
    server_name: str = "DID Wallet Auth"
    server_url: str = "http://localhost:5179"
    protocol_version: str = "1.0"

    # JWT Settings
    jwt_secret_key: str | None = None
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = Field(15, gt=0)

    # Replay / freshness windows (seconds)
    clock_skew_seconds: int = Field(300, ge=0)
    nonce_expiration_seconds: int = Field(300, gt=0)

    # DID formatting: did:<method>:<checksum address without 0x>
    did_method: str = "etho"
    did_case_sensitive: bool = False

    cors_origins: list[str] = ["*"]
    port: int = 5179


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} in environment ({raw!r}). Defaulting to {default}.")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


def load_settings() -> Settings:
    """Reads the process environment (and .env, if present) into a Settings object."""
    defaults = Settings()
    cors = os.getenv("CORS_ORIGINS")
    settings = Settings(
        server_name=os.getenv("SERVER_NAME", defaults.server_name),
        server_url=os.getenv("SERVER_URL", defaults.server_url).rstrip("/"),
        protocol_version=os.getenv("PROTOCOL_VERSION", defaults.protocol_version),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY") or None,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", defaults.jwt_algorithm),
        jwt_access_token_expire_minutes=_env_int(
            "JWT_ACCESS_TOKEN_EXPIRE_MINUTES", defaults.jwt_access_token_expire_minutes
        ),
        clock_skew_seconds=_env_int("CLOCK_SKEW_SECONDS", defaults.clock_skew_seconds),
        nonce_expiration_seconds=_env_int("NONCE_EXPIRATION_SECONDS", defaults.nonce_expiration_seconds),
        did_method=os.getenv("DID_METHOD", defaults.did_method),
        did_case_sensitive=_env_bool("DID_CASE_SENSITIVE", defaults.did_case_sensitive),
        cors_origins=[o.strip() for o in cors.split(",") if o.strip()] if cors else defaults.cors_origins,
        port=_env_int("PORT", defaults.port),
    )

    # Basic validation
    if not settings.jwt_secret_key:
        logger.warning("JWT_SECRET_KEY not found in environment. Credential issuance will fail.")
    return settings
