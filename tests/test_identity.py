import pytest

from didauth.errors import IdentityMismatchError
from didauth.services.identity import (
    address_from_did,
    canonical_address,
    derive_did,
    verify_binding,
)


def test_canonical_address_is_checksummed(test_address):
    assert canonical_address(test_address.lower()) == test_address
    assert canonical_address("0x" + test_address[2:].upper()) == test_address


@pytest.mark.parametrize("bad", ["", "0x1234", "hello", None, "0x" + "g" * 40])
def test_canonical_address_rejects_garbage(bad):
    with pytest.raises(IdentityMismatchError):
        canonical_address(bad)


def test_derive_did_uses_checksum_form(test_address):
    assert derive_did(test_address.lower()) == "did:etho:" + test_address[2:]
    assert derive_did(test_address, method="ont") == "did:ont:" + test_address[2:]


def test_derive_did_equal_iff_same_address(test_address, other_address):
    assert derive_did(test_address.lower()) == derive_did(test_address)
    assert derive_did(test_address) != derive_did(other_address)


def test_address_from_did_round_trip(test_address):
    assert address_from_did(derive_did(test_address)) == test_address
    assert address_from_did("DID:ETHO:" + test_address[2:].lower()) == test_address
    with pytest.raises(IdentityMismatchError):
        address_from_did("did:other:" + test_address[2:])


def test_binding_succeeds_and_returns_server_did(test_address):
    claimed = "did:etho:" + test_address[2:].lower()
    identity = verify_binding(claimed, test_address.lower(), test_address)
    assert identity.address == test_address
    assert identity.did == "did:etho:" + test_address[2:]
    assert identity.did != claimed


def test_address_mismatch_wins_over_did(test_address, other_address):
    # DID matches the claimed account, but someone else signed
    with pytest.raises(IdentityMismatchError) as exc:
        verify_binding(derive_did(test_address), test_address, other_address)
    assert exc.value.message == "Signature does not match account"


def test_did_mismatch(test_address, other_address):
    with pytest.raises(IdentityMismatchError) as exc:
        verify_binding(derive_did(other_address), test_address, test_address)
    assert exc.value.message == "DID/account mismatch"


def test_case_sensitive_did_compare(test_address):
    claimed = "did:etho:" + test_address[2:].lower()
    with pytest.raises(IdentityMismatchError):
        verify_binding(claimed, test_address, test_address, case_sensitive=True)
    identity = verify_binding(derive_did(test_address), test_address, test_address, case_sensitive=True)
    assert identity.did == derive_did(test_address)


def test_invalid_claimed_account(test_address):
    with pytest.raises(IdentityMismatchError):
        verify_binding(derive_did(test_address), "not-an-address", test_address)
