"""
Shared fixtures: a controllable clock, a fixed wallet key and helpers that
build verify payloads the way the login page does.
"""

from datetime import timedelta

import pytest
from eth_account import Account

from didauth.config import Settings
from didauth.nonce_store import InMemoryNonceStore
from didauth.services.challenge import ChallengeProtocolHandler
from didauth.services.credentials import CredentialIssuer
from didauth.services.typed_data import build_sign_data

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OTHER_PRIVATE_KEY = "0x" + "11" * 32
TEST_SECRET = "test-secret-key"
START_TIME = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def sign_payload(sign_data: dict, private_key: str) -> str:
    types = {k: v for k, v in sign_data["types"].items() if k != "EIP712Domain"}
    signed = Account.sign_typed_data(
        private_key,
        domain_data=sign_data["domain"],
        message_types=types,
        message_data=sign_data["message"],
    )
    return "0x" + bytes(signed.signature).hex()


def did_for(address: str) -> str:
    return "did:etho:" + address[2:]


def make_verify_payload(hello, private_key=TEST_PRIVATE_KEY, account=None, did=None,
                        created=None, sign_data=None) -> dict:
    """Builds the ClientResponse body for a ServerHello, signed with `private_key`."""
    hello = hello.model_dump() if hasattr(hello, "model_dump") else hello
    signer = Account.from_key(private_key).address
    account = account or signer
    did = did or did_for(account)
    sign_data = sign_data or build_sign_data(hello, did, created=created)
    signature = sign_payload(sign_data, private_key)
    return {
        "ver": "1.0",
        "type": "ClientResponse",
        "nonce": hello["nonce"],
        "did": did,
        "proof": {
            "type": "ecdsa",
            "verificationMethod": f"{did}#key-1",
            "created": sign_data["message"]["created"],
            "value": signature,
        },
        "VPs": [],
        "signData": sign_data,
        "challengeId": hello["challengeId"],
        "account": account,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        server_name="Test Server",
        server_url="https://auth.example.test",
        jwt_secret_key=TEST_SECRET,
        clock_skew_seconds=300,
        nonce_expiration_seconds=300,
    )


@pytest.fixture
def store(clock, settings):
    return InMemoryNonceStore(ttl_seconds=settings.nonce_expiration_seconds, clock=clock)


@pytest.fixture
def issuer(clock, settings):
    return CredentialIssuer(
        secret_key=settings.jwt_secret_key,
        lifetime=timedelta(minutes=settings.jwt_access_token_expire_minutes),
        clock=clock,
    )


@pytest.fixture
def handler(settings, store, issuer, clock):
    return ChallengeProtocolHandler(settings, store, issuer, clock=clock)


@pytest.fixture
def test_address():
    return Account.from_key(TEST_PRIVATE_KEY).address


@pytest.fixture
def other_address():
    return Account.from_key(OTHER_PRIVATE_KEY).address
