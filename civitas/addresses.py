"""
Address and selector helpers.

Every address entering the engine is normalized to its EIP-55 checksum form
so that dictionary lookups never depend on the caller's casing.
"""

from typing import Iterable, Tuple, Union

from eth_utils import (
    encode_hex,
    function_signature_to_4byte_selector,
    is_address,
    to_checksum_address,
)

from .constants import ANY_METHOD
from .exceptions import InvalidAddressError


def normalize_address(address: str) -> str:
    """Return the checksum form of *address* or raise InvalidAddressError."""
    if not isinstance(address, str) or not is_address(address):
        raise InvalidAddressError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def normalize_addresses(addresses: Iterable[str]) -> Tuple[str, ...]:
    return tuple(normalize_address(a) for a in addresses)


def method_selector(signature: Union[str, bytes, None]) -> bytes:
    """
    4-byte selector of a method signature such as ``"mint(address[],uint256[])"``.

    Raw 4-byte values pass through; an empty signature maps to ANY_METHOD.
    """
    if not signature:
        return ANY_METHOD
    if isinstance(signature, bytes):
        if len(signature) != 4:
            raise ValueError(f"Selector must be 4 bytes, got {len(signature)}")
        return signature
    return function_signature_to_4byte_selector(signature)


def selector_hex(selector: bytes) -> str:
    return encode_hex(selector)
