from dataclasses import dataclass

from web3 import Web3

from ..errors import IdentityMismatchError

DEFAULT_DID_METHOD = "etho"


@dataclass(frozen=True)
class Identity:
    address: str  # EIP-55 checksum form
    did: str


def canonical_address(address: str) -> str:
    """Returns the checksum form of `address`. Raises IdentityMismatchError if it is not one."""
    if not isinstance(address, str) or not Web3.is_address(address.strip()):
        raise IdentityMismatchError(reason=f"not a valid address: {address!r}")
    return Web3.to_checksum_address(address.strip())


def derive_did(address: str, method: str = DEFAULT_DID_METHOD) -> str:
    checksum = canonical_address(address)
    return f"did:{method}:{checksum[2:]}"


def address_from_did(did: str, method: str = DEFAULT_DID_METHOD) -> str:
    """Inverse of derive_did; used to check credential claims."""
    prefix = f"did:{method}:"
    if not isinstance(did, str) or not did.lower().startswith(prefix.lower()):
        raise IdentityMismatchError("DID/account mismatch", reason=f"unexpected DID format: {did!r}")
    return canonical_address("0x" + did[len(prefix):])


def verify_binding(claimed_did: str, claimed_account: str, recovered_address: str,
                   method: str = DEFAULT_DID_METHOD, case_sensitive: bool = False) -> Identity:
    """
    Binds the recovered signer to the claimed account and DID.

    The address check runs first, so a wrong signer is reported as an
    address mismatch whatever the DID says. The returned DID is always
    derived server-side.
    """
    signer = canonical_address(recovered_address)
    account = canonical_address(claimed_account)
    if signer != account:
        raise IdentityMismatchError(
            "Signature does not match account",
            reason=f"recovered {signer}, expected {account}",
        )

    expected_did = derive_did(account, method)
    claimed = str(claimed_did)
    if case_sensitive:
        matches = expected_did == claimed
    else:
        matches = expected_did.lower() == claimed.lower()
    if not matches:
        raise IdentityMismatchError(
            "DID/account mismatch",
            reason=f"expected {expected_did}, got {claimed}",
        )
    return Identity(address=account, did=expected_did)
