from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, List


class ServerInfo(BaseModel):
    name: str
    url: str


class ServerHello(BaseModel):
    ver: str = Field(..., description="Protocol version.")
    type: str = "ServerHello"
    nonce: str = Field(..., description="One-time value the wallet must sign.")
    server: ServerInfo
    challengeId: str = Field(..., description="Opaque id to echo back in /verify.")


class Proof(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: str = Field(..., min_length=1, description="Hex-encoded signature from the wallet.")
    # Informational only; wallets send these in varying shapes
    type: Any = None
    verificationMethod: Any = None
    created: Any = None


class SignData(BaseModel):
    domain: Dict[str, Any] = Field(..., description="EIP-712 domain.")
    types: Dict[str, List[Dict[str, Any]]] = Field(..., description="EIP-712 type schema.")
    message: Dict[str, Any] = Field(..., description="Signed message; carries `created` and `nonce`.")


class VerifyRequest(BaseModel):
    model_config = ConfigDict(extra="allow")  # ver/type/VPs are accepted and ignored

    nonce: str = Field(..., min_length=1)
    did: str = Field(..., min_length=1)
    proof: Proof
    signData: SignData
    challengeId: str = Field(..., min_length=1)
    account: str = Field(..., min_length=1)


class VerifyResponse(BaseModel):
    token: str = Field(..., description="Signed session credential (JWT).")
    did: str = Field(..., description="Server-derived DID.")
    address: str = Field(..., description="Checksummed wallet address.")


class SessionResponse(BaseModel):
    did: str
    address: str
    expiresAt: int
