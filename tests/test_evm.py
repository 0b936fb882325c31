"""Tests for EVM address derivation and validation."""

from decimal import Decimal

import pytest

from conftest import ADDRESS_ONE, KEY_ONE
from trapkeeper import evm
from trapkeeper.errors import InvalidAddressFormat, InvalidCredentialFormat


def test_derive_address_from_private_key():
    info = evm.derive_address_from_private_key("0x" + KEY_ONE)
    assert info["address"] == ADDRESS_ONE
    assert info["public_key"].startswith("0x")


def test_load_identity_normalizes_key():
    identity = evm.load_identity("  0x" + KEY_ONE + "\n")
    assert identity.private_key == KEY_ONE
    assert identity.address == ADDRESS_ONE
    assert KEY_ONE not in repr(identity)


def test_load_identity_rejects_bad_key():
    with pytest.raises(InvalidCredentialFormat):
        evm.load_identity("0x1234")


SECP256K1_ORDER_HEX = "fffffffffffffffffffffffffffffffebaaedce6af48a03bbfd25e8cd0364141"


@pytest.mark.parametrize("key", ["0" * 64, "f" * 64, SECP256K1_ORDER_HEX])
def test_load_identity_rejects_out_of_range_key(key):
    with pytest.raises(InvalidCredentialFormat, match="secp256k1 range") as excinfo:
        evm.load_identity(key)
    assert excinfo.value.__cause__ is None
    assert excinfo.value.__suppress_context__ is True
    assert str(int(key, 16)) not in str(excinfo.value)
    assert key not in str(excinfo.value)


@pytest.mark.parametrize("address", [ADDRESS_ONE, ADDRESS_ONE.lower(), " " + ADDRESS_ONE + " "])
def test_validate_address_accepts(address):
    assert evm.validate_address(address) == address.strip()


@pytest.mark.parametrize(
    "address",
    ["", "0x", ADDRESS_ONE[2:], ADDRESS_ONE + "0", ADDRESS_ONE[:-1], "0x" + "g" * 40],
)
def test_validate_address_rejects(address):
    with pytest.raises(InvalidAddressFormat):
        evm.validate_address(address)


def test_find_addresses_skips_longer_hex():
    tx_hash = "0x" + "a" * 64
    text = f"tx {tx_hash}\ntrapAddress: {ADDRESS_ONE}\n"
    assert evm.find_addresses(text) == [ADDRESS_ONE]


def test_get_balance_uses_client(monkeypatch):
    class FakeClient:
        def __init__(self, rpc_endpoint):
            self.rpc_endpoint = rpc_endpoint

        def get_balance(self, address):
            return Decimal("1.5")

    monkeypatch.setattr(evm, "EVMClient", FakeClient)
    assert evm.get_balance(ADDRESS_ONE, "https://rpc.example.org") == Decimal("1.5")
