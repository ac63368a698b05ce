"""
Default EIP-7702 transaction codec.

The codec exposes exactly two pure functions with a JSON string in, JSON
string out boundary, so any external implementation (a compiled helper, a
remote service) can be dropped in behind the same contract:

``make_unsigned_tx``
    ``{"chainId", "nonce", "to", "value", "gas", "gasFeeCap", "gasTipCap",
    "gasPrice"?, "data"?, "authList": [{"chainId", "address", "nonce", "r",
    "s", "v"}]}`` -> ``{"unsignedTx", "signHash"}``

``compile_with_signature``
    ``{"chainId", "unsignedTx", "signature"}`` -> ``{"signedTx", "txHash"}``

Failures are reported as ``{"error": "..."}`` rather than raised.
"""
import json
import logging
from typing import List, Protocol

import rlp
from eth_utils import keccak
from rlp.exceptions import RLPException

from ..utils import hex_to_bytes, strip_0x, to_hex

logger = logging.getLogger(__name__)

SET_CODE_TX_TYPE = 0x04
AUTHORIZATION_MAGIC = 0x05
UNSIGNED_FIELD_COUNT = 10


class TransactionCodec(Protocol):
    """Protocol for transaction codecs used by the codec bridge"""

    def make_unsigned_tx(self, request: str) -> str:
        """Encode transaction fields, returning the unsigned tx and its sign hash"""
        ...

    def compile_with_signature(self, request: str) -> str:
        """Splice a signature into an unsigned tx, returning the signed tx and its hash"""
        ...


def authorization_hash(chain_id: int, contract_address: str, nonce: int) -> bytes:
    """
    Hash an authorization signer must sign: ``keccak(0x05 || rlp([chainId, address, nonce]))``.
    """
    address = hex_to_bytes(contract_address, "address")
    if len(address) != 20:
        raise ValueError(f"address must be 20 bytes, got {len(address)}")
    return keccak(bytes([AUTHORIZATION_MAGIC]) + rlp.encode([chain_id, address, nonce]))


def _parity(v: int) -> int:
    parity = v - 27 if v >= 27 else v
    if parity not in (0, 1):
        raise ValueError(f"invalid recovery id: {v}")
    return parity


def _address_bytes(value: str, field: str) -> bytes:
    address = bytes.fromhex(strip_0x(value))
    if len(address) != 20:
        raise ValueError(f"{field} must be 20 bytes, got {len(address)}")
    return address


class RlpTransactionCodec:
    """Type-4 (set code) transaction codec built on pyrlp."""

    def make_unsigned_tx(self, request: str) -> str:
        try:
            params = json.loads(request)
            payload = bytes([SET_CODE_TX_TYPE]) + rlp.encode(self._unsigned_fields(params))
        except (ValueError, KeyError, TypeError, RLPException) as e:
            logger.debug(f"make_unsigned_tx failed: {e}")
            return json.dumps({"error": f"{type(e).__name__}: {e}"})

        return json.dumps({
            "unsignedTx": to_hex(payload),
            "signHash": to_hex(keccak(payload)),
        })

    def compile_with_signature(self, request: str) -> str:
        try:
            params = json.loads(request)
            raw = bytes.fromhex(strip_0x(params["unsignedTx"]))
            if not raw or raw[0] != SET_CODE_TX_TYPE:
                raise ValueError("unsignedTx is not a set-code (type 4) transaction")

            fields = rlp.decode(raw[1:])
            if len(fields) != UNSIGNED_FIELD_COUNT:
                raise ValueError(f"unsignedTx has {len(fields)} fields, expected {UNSIGNED_FIELD_COUNT}")

            chain_id = int(params["chainId"])
            encoded_chain_id = int.from_bytes(fields[0], "big")
            if encoded_chain_id != chain_id:
                raise ValueError(f"chainId {chain_id} does not match transaction chainId {encoded_chain_id}")

            signature = bytes.fromhex(strip_0x(params["signature"]))
            if len(signature) != 65:
                raise ValueError(f"signature must be 65 bytes, got {len(signature)}")
            r = int.from_bytes(signature[:32], "big")
            s = int.from_bytes(signature[32:64], "big")
            y_parity = _parity(signature[64])

            signed = bytes([SET_CODE_TX_TYPE]) + rlp.encode(list(fields) + [y_parity, r, s])
        except (ValueError, KeyError, TypeError, RLPException) as e:
            logger.debug(f"compile_with_signature failed: {e}")
            return json.dumps({"error": f"{type(e).__name__}: {e}"})

        return json.dumps({
            "signedTx": to_hex(signed),
            "txHash": to_hex(keccak(signed)),
        })

    def _unsigned_fields(self, params: dict) -> List:
        if params.get("gasPrice") is not None and params.get("gasFeeCap") is None:
            # Legacy pricing: the single gas price caps both fee and tip
            fee_cap = tip_cap = int(params["gasPrice"])
        else:
            fee_cap = int(params["gasFeeCap"])
            tip_cap = int(params["gasTipCap"])

        auth_list = [
            [
                int(auth["chainId"]),
                _address_bytes(auth["address"], "authorization address"),
                int(auth["nonce"]),
                _parity(int(auth["v"])),
                int(auth["r"], 16),
                int(auth["s"], 16),
            ]
            for auth in params.get("authList") or []
        ]

        return [
            int(params["chainId"]),
            int(params["nonce"]),
            tip_cap,
            fee_cap,
            int(params["gas"]),
            _address_bytes(params["to"], "to"),
            int(params.get("value") or 0),
            bytes.fromhex(strip_0x(params.get("data") or "0x")),
            [],
            auth_list,
        ]
