"""EVM key and account operations."""

import re
from decimal import Decimal
from typing import Dict

from eth_account import Account
from eth_keys import keys
from eth_utils import ValidationError
from web3 import Web3

from trapkeeper.credentials import normalize_private_key
from trapkeeper.errors import InvalidAddressFormat, InvalidCredentialFormat
from trapkeeper.models import OperatorIdentity

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
ADDRESS_SEARCH_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}(?![0-9a-fA-F])")


class EVMClient:
    """EVM client bound to one RPC endpoint."""

    def __init__(self, rpc_endpoint: str):
        """
        Initialize EVM client.

        Args:
            rpc_endpoint: HTTP(S) JSON-RPC endpoint URL
        """
        self.rpc_endpoint = rpc_endpoint
        self.w3 = self._connect_web3()

    def _connect_web3(self) -> Web3:
        """Return a connected Web3 instance or raise if unreachable."""
        w3 = Web3(Web3.HTTPProvider(self.rpc_endpoint))

        if not w3.is_connected():
            raise ConnectionError(f"Failed to connect to RPC endpoint: {self.rpc_endpoint}")

        return w3

    def get_balance(self, address: str) -> Decimal:
        """
        Get native coin balance of an address.

        Args:
            address: Address to query

        Returns:
            Balance in ether units
        """
        checksum = Web3.to_checksum_address(validate_address(address))
        balance_wei = self.w3.eth.get_balance(checksum)
        return Decimal(Web3.from_wei(balance_wei, "ether"))


def derive_address_from_private_key(privkey_str: str) -> Dict[str, str]:
    """
    Derive public key and checksummed address from an EVM private key.

    Raises:
        InvalidCredentialFormat: If the key is malformed, zero, or not below
            the secp256k1 group order
    """
    privkey_hex = normalize_private_key(privkey_str)
    private_key_bytes = bytes.fromhex(privkey_hex)

    # library errors quote the key as an integer and must not be chained
    try:
        private_key_obj = keys.PrivateKey(private_key_bytes)
        account = Account.from_key(private_key_bytes)
    except (ValueError, ValidationError):
        raise InvalidCredentialFormat("Private key is outside the valid secp256k1 range.") from None

    return {
        "public_key": private_key_obj.public_key.to_hex(),
        "address": account.address,
    }


def load_identity(privkey_str: str) -> OperatorIdentity:
    """Build an OperatorIdentity from a private key."""
    privkey_hex = normalize_private_key(privkey_str)
    derived = derive_address_from_private_key(privkey_hex)
    return OperatorIdentity(
        private_key=privkey_hex,
        address=validate_address(derived["address"]),
        public_key=derived["public_key"],
    )


def validate_address(address: str) -> str:
    """
    Validate a 20-byte hex address.

    Args:
        address: Candidate address, surrounding whitespace ignored

    Returns:
        The stripped address

    Raises:
        InvalidAddressFormat: If the value is not 0x followed by 40 hex characters
    """
    candidate = (address or "").strip()
    if not ADDRESS_PATTERN.match(candidate):
        raise InvalidAddressFormat(f"Invalid address {candidate!r}: expected 0x followed by 40 hex characters.")
    return candidate


def find_addresses(text: str) -> list[str]:
    """Return all 20-byte hex addresses appearing in text, in order."""
    return ADDRESS_SEARCH_PATTERN.findall(text or "")


def get_balance(address: str, rpc_endpoint: str) -> Decimal:
    """Get native coin balance of an address through the given RPC endpoint."""
    client = EVMClient(rpc_endpoint)
    return client.get_balance(address)
