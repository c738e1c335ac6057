import logging
import time
from typing import Any, Dict, List

from eth_account import Account
from eth_account.messages import encode_typed_data
from hexbytes import HexBytes
from web3 import Web3

from ..errors import CryptographicError

logger = logging.getLogger(__name__)

# secp256k1 group order; signatures with s above half of it are the malleable twin
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

SIGNATURE_LENGTH = 65

# --- Default SignPayload layout (what the login page asks the wallet to sign) ---
DEFAULT_DOMAIN = {"name": "ontlogin", "version": "v1.0.0", "chainId": 1}

CLIENT_RESPONSE_TYPES: Dict[str, List[Dict[str, str]]] = {
    "ClientResponseMsg": [
        {"name": "type", "type": "string"},
        {"name": "server", "type": "Server"},
        {"name": "nonce", "type": "string"},
        {"name": "did", "type": "string"},
        {"name": "created", "type": "string"},
    ],
    "Server": [
        {"name": "name", "type": "string"},
        {"name": "url", "type": "string"},
    ],
}


def build_sign_data(server_hello: Dict[str, Any], did: str, created: int | None = None,
                    domain: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """
    Builds the typed-data payload a wallet signs in response to a ServerHello.

    - **server_hello**: the challenge returned by `/api/challenge`.
    - **did**: the DID the client claims.
    - **created**: unix seconds; defaults to now. Sent as a string.
    """
    if created is None:
        created = int(time.time())
    server = server_hello.get("server") or {}
    return {
        "domain": dict(domain or DEFAULT_DOMAIN),
        "types": {name: [dict(f) for f in fields] for name, fields in CLIENT_RESPONSE_TYPES.items()},
        "message": {
            "type": "ClientResponse",
            "server": {"name": server.get("name", ""), "url": server.get("url", "")},
            "nonce": server_hello["nonce"],
            "did": did,
            "created": str(created),
        },
    }


def decode_signature(signature: Any) -> bytes:
    """Parses a hex signature into 65 bytes and rejects non-canonical encodings."""
    if not isinstance(signature, str) or not signature:
        raise CryptographicError(reason="signature is not a hex string")
    try:
        raw = bytes(HexBytes(signature))
    except ValueError as e:
        raise CryptographicError(reason=f"malformed signature encoding: {e}") from e

    if len(raw) != SIGNATURE_LENGTH:
        raise CryptographicError(reason=f"signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}")

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]
    if v not in (0, 1, 27, 28):
        raise CryptographicError(reason=f"invalid recovery id v={v}")
    if not (0 < r < SECP256K1_N) or not (0 < s <= SECP256K1_HALF_N):
        raise CryptographicError(reason="non-canonical signature (r/s out of range)")
    return raw


def _check_struct(type_name: str, types: Dict[str, Any], value: Any, path: str):
    """Every field the schema declares must be present, nested structs included."""
    if not isinstance(value, dict):
        raise CryptographicError(reason=f"typed data field {path} is not a struct")
    fields = types[type_name]
    if not isinstance(fields, list):
        raise CryptographicError(reason=f"typed data type {type_name} is malformed")
    for field in fields:
        if not isinstance(field, dict) or "name" not in field or "type" not in field:
            raise CryptographicError(reason=f"typed data type {type_name} has a malformed field")
        name, field_type = field["name"], str(field["type"])
        if value.get(name) is None:
            raise CryptographicError(reason=f"typed data field {path}.{name} missing")
        _check_value(field_type, types, value[name], f"{path}.{name}")


def _check_value(field_type: str, types: Dict[str, Any], value: Any, path: str):
    if field_type.endswith("]"):
        if not isinstance(value, list):
            raise CryptographicError(reason=f"typed data field {path} is not an array")
        item_type = field_type[:field_type.rindex("[")]
        for i, item in enumerate(value):
            if item is None:
                raise CryptographicError(reason=f"typed data field {path}[{i}] missing")
            _check_value(item_type, types, item, f"{path}[{i}]")
    elif field_type in types:
        _check_struct(field_type, types, value, path)


def _primary_type(types: Dict[str, Any]) -> str:
    referenced = set()
    for fields in types.values():
        for field in fields if isinstance(fields, list) else []:
            if isinstance(field, dict):
                referenced.add(str(field.get("type", "")).split("[")[0])
    roots = [name for name in types if name not in referenced]
    if len(roots) != 1:
        raise CryptographicError(reason=f"typed data schema has {len(roots)} root types")
    return roots[0]


def hash_typed_data(domain: Dict[str, Any], types: Dict[str, Any], message: Dict[str, Any]):
    """EIP-712 signable message. The primary type is inferred from the schema."""
    if not isinstance(domain, dict) or not domain:
        raise CryptographicError(reason="typed data domain missing")
    if not isinstance(types, dict) or not isinstance(message, dict):
        raise CryptographicError(reason="typed data types/message missing")
    # The domain type is derived from the domain keys
    message_types = {k: v for k, v in types.items() if k != "EIP712Domain"}
    if not message_types:
        raise CryptographicError(reason="typed data schema is empty")
    _check_struct(_primary_type(message_types), message_types, message, "message")
    try:
        return encode_typed_data(domain_data=domain, message_types=message_types, message_data=message)
    except Exception as e:
        raise CryptographicError(reason=f"typed data could not be encoded: {e}") from e


def recover_signer(domain: Dict[str, Any], types: Dict[str, Any], message: Dict[str, Any],
                   signature: Any) -> str:
    """
    Recovers the checksum address that signed the typed data.

    Raises CryptographicError on any failure; the only trusted output is the
    recovered address, never a signer field supplied by the client.
    """
    raw = decode_signature(signature)
    signable = hash_typed_data(domain, types, message)
    try:
        recovered = Account.recover_message(signable, signature=raw)
    except Exception as e:
        raise CryptographicError(reason=f"signature recovery failed: {e}") from e
    return Web3.to_checksum_address(recovered)
