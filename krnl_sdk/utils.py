"""
Utility helpers shared by the intent builder, codec bridge and authorization manager.

Numeric fields arrive as native ints, 0x-prefixed hex strings or decimal
strings depending on the collaborator that produced them; ``normalize_numeric``
is the single place where they are turned into Python ints.
"""
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

import requests
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import Web3Exception

from .exceptions import MalformedSignatureError, MissingAddressError, SerializationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Errors a chain RPC call can surface as
RPC_ERRORS = (Web3Exception, requests.exceptions.RequestException, ValueError, OSError)

# Largest integer a float can carry without losing precision
_MAX_SAFE_FLOAT_INT = 2 ** 53


def strip_0x(value: str) -> str:
    """Remove a leading 0x/0X prefix if present."""
    return value[2:] if value[:2] in ("0x", "0X") else value


def normalize_numeric(value: Any, field: str = "value", bits: int = 256) -> int:
    """
    Convert a numeric field to a non-negative int that fits in ``bits`` bits.

    Args:
        value: int, 0x-prefixed hex string, decimal string, integral float or Decimal
        field: Field name used in error messages
        bits: Width of the target field

    Returns:
        The value as a Python int

    Raises:
        SerializationError: If the value cannot be converted without loss
    """
    if isinstance(value, bool) or value is None:
        raise SerializationError(f"{field}: expected a number, got {value!r}")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text[:2] in ("0x", "0X"):
                if len(text) == 2:
                    raise ValueError("empty hex quantity")
                result = int(text, 16)
            elif text.isdigit():
                result = int(text, 10)
            else:
                raise ValueError("not an integer literal")
        except ValueError as e:
            raise SerializationError(f"{field}: cannot parse {value!r} as an integer: {e}")
    elif isinstance(value, float):
        if not value.is_integer() or abs(value) >= _MAX_SAFE_FLOAT_INT:
            raise SerializationError(f"{field}: {value!r} is not exactly representable as an integer")
        result = int(value)
    elif isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise SerializationError(f"{field}: {value!r} has a fractional part")
        result = int(value)
    else:
        raise SerializationError(f"{field}: unsupported numeric type {type(value).__name__}")

    if result < 0:
        raise SerializationError(f"{field}: negative values are not allowed ({result})")
    if result >= 2 ** bits:
        raise SerializationError(f"{field}: {result} exceeds {bits}-bit width")
    return result


def to_hex(value: Union[bytes, int, str]) -> str:
    """Return a 0x-prefixed lowercase hex string for bytes, ints or hex strings."""
    if isinstance(value, int):
        return hex(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return "0x" + strip_0x(value).lower()


def hex_to_bytes(value: Union[str, bytes], field: str = "value") -> bytes:
    """
    Decode a hex string (with or without 0x) to bytes.

    Raises:
        SerializationError: If the string is not valid hex
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        return bytes.fromhex(strip_0x(value))
    except (ValueError, TypeError) as e:
        raise SerializationError(f"{field}: invalid hex string {value!r}: {e}")


def normalize_address(address: Optional[str], field: str = "address") -> str:
    """
    Validate an address and return its checksummed form.

    Raises:
        MissingAddressError: If the address is absent or malformed
    """
    if not address:
        raise MissingAddressError(f"{field} is required")
    if not isinstance(address, str) or not Web3.is_address(address):
        raise MissingAddressError(f"{field} is not a valid address: {address!r}")
    return Web3.to_checksum_address(address)


def signature_to_bytes(signature: Any) -> bytes:
    """
    Turn signer output into raw ``r || s || v`` bytes.

    Accepts a hex string, bytes, an eth-account signed object exposing
    ``signature``, or a mapping with ``r``, ``s`` and ``v`` or ``yParity``.
    The length is not checked here; the codec bridge enforces 65 bytes.

    Raises:
        MalformedSignatureError: If the output cannot be interpreted
    """
    if hasattr(signature, "signature") and not isinstance(signature, Mapping):
        signature = signature.signature

    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)

    if isinstance(signature, str):
        try:
            return bytes(HexBytes(signature))
        except ValueError as e:
            raise MalformedSignatureError(f"Signature is not valid hex: {e}")

    if isinstance(signature, Mapping) and "r" in signature and "s" in signature:
        v = signature.get("v")
        if v is None and signature.get("yParity") is not None:
            v = normalize_numeric(signature["yParity"], "yParity", bits=8) + 27
        if v is None:
            raise MalformedSignatureError("Signature mapping has neither v nor yParity")
        try:
            r = normalize_numeric(signature["r"], "r").to_bytes(32, "big")
            s = normalize_numeric(signature["s"], "s").to_bytes(32, "big")
            v_byte = normalize_numeric(v, "v", bits=8).to_bytes(1, "big")
        except SerializationError as e:
            raise MalformedSignatureError(f"Invalid signature component: {e}")
        return r + s + v_byte

    raise MalformedSignatureError(f"Unsupported signature format: {type(signature).__name__}")
