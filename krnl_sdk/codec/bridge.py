"""
Bridge between typed transaction fields and the JSON string codec.

All numeric normalisation happens here, once, before anything reaches the
codec. The bridge performs no network I/O.
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional, Union

from ..exceptions import CompileError, MalformedSignatureError, MissingAddressError, SerializationError
from ..models import AuthorizationTuple, SignedTransaction, UnsignedTransaction
from ..utils import ZERO_ADDRESS, hex_to_bytes, normalize_address, normalize_numeric, signature_to_bytes, to_hex
from .rlp_codec import RlpTransactionCodec, TransactionCodec

SIGNATURE_LENGTH = 65

# Accepted spellings for each transaction field
_FIELD_ALIASES = {
    "chain_id": ("chain_id", "chainId"),
    "nonce": ("nonce",),
    "to": ("to",),
    "value": ("value",),
    "gas": ("gas", "gas_limit", "gasLimit"),
    "gas_price": ("gas_price", "gasPrice"),
    "max_fee_per_gas": ("max_fee_per_gas", "maxFeePerGas", "gas_fee_cap", "gasFeeCap"),
    "max_priority_fee_per_gas": (
        "max_priority_fee_per_gas", "maxPriorityFeePerGas", "gas_tip_cap", "gasTipCap"
    ),
    "data": ("data", "input"),
    "authorization_list": ("authorization_list", "authorizationList", "auth_list", "authList"),
}


def _field(tx_fields: Mapping[str, Any], name: str) -> Any:
    for key in _FIELD_ALIASES[name]:
        if tx_fields.get(key) is not None:
            return tx_fields[key]
    return None


class CodecBridge:
    """
    Typed front end for a TransactionCodec.

    Args:
        codec: Codec implementation; defaults to RlpTransactionCodec
        logger: Optional logger instance
    """

    def __init__(self, codec: Optional[TransactionCodec] = None, logger: Optional[logging.Logger] = None):
        self.codec = codec or RlpTransactionCodec()
        self.logger = logger or logging.getLogger(__name__)

    def build_unsigned(self, tx_fields: Mapping[str, Any]) -> UnsignedTransaction:
        """
        Encode transaction fields into an unsigned transaction.

        Args:
            tx_fields: chain_id, nonce, to, value, gas, gas_price or
                max_fee_per_gas/max_priority_fee_per_gas, data and
                authorization_list (snake_case or camelCase keys)

        Returns:
            UnsignedTransaction with the bytes to sign over

        Raises:
            SerializationError: If a field is missing, lossy or rejected by the codec
        """
        request = self._codec_request(tx_fields)
        response = self._call(self.codec.make_unsigned_tx, request, SerializationError)

        try:
            unsigned = UnsignedTransaction(
                unsigned_tx=response["unsignedTx"],
                sign_hash=response["signHash"]
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"Codec returned an incomplete unsigned transaction: {e}")

        self.logger.debug(f"Built unsigned tx for chain {request['chainId']}, sign hash {unsigned.sign_hash}")
        return unsigned

    def finalize(
        self,
        unsigned_tx: Union[UnsignedTransaction, str],
        signature: Any,
        chain_id: Any,
    ) -> SignedTransaction:
        """
        Combine an unsigned transaction with its signature.

        Args:
            unsigned_tx: UnsignedTransaction or its raw hex
            signature: 65-byte signature as hex, bytes or an {r, s, v|yParity} mapping
            chain_id: Chain the transaction was built for

        Returns:
            SignedTransaction ready for broadcast

        Raises:
            CompileError: If the signature is not 65 bytes or the codec rejects it
        """
        raw_unsigned = unsigned_tx.unsigned_tx if isinstance(unsigned_tx, UnsignedTransaction) else unsigned_tx

        try:
            signature_bytes = signature_to_bytes(signature)
        except MalformedSignatureError as e:
            raise CompileError(str(e))
        if len(signature_bytes) != SIGNATURE_LENGTH:
            raise CompileError(
                f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature_bytes)}"
            )

        try:
            chain = normalize_numeric(chain_id, "chain_id")
        except SerializationError as e:
            raise CompileError(str(e))

        request = {
            "chainId": chain,
            "unsignedTx": to_hex(raw_unsigned),
            "signature": to_hex(signature_bytes),
        }
        response = self._call(self.codec.compile_with_signature, request, CompileError)

        try:
            signed = SignedTransaction(signed_tx=response["signedTx"], tx_hash=response["txHash"])
        except (KeyError, TypeError, ValueError) as e:
            raise CompileError(f"Codec returned an incomplete signed transaction: {e}")

        self.logger.debug(f"Finalized transaction {signed.tx_hash}")
        return signed

    def _call(self, func, request: Dict[str, Any], error_cls) -> Dict[str, Any]:
        try:
            raw_response = func(json.dumps(request))
            response = json.loads(raw_response)
        except (TypeError, ValueError) as e:
            raise error_cls(f"Codec returned invalid JSON: {e}")

        if not isinstance(response, dict):
            raise error_cls(f"Codec returned {type(response).__name__}, expected an object")
        if response.get("error"):
            raise error_cls(f"Codec error: {response['error']}")
        return response

    def _codec_request(self, tx_fields: Mapping[str, Any]) -> Dict[str, Any]:
        for required in ("chain_id", "nonce", "gas"):
            if _field(tx_fields, required) is None:
                raise SerializationError(f"{required} is required")

        to = _field(tx_fields, "to") or ZERO_ADDRESS
        try:
            to = normalize_address(to, "to")
        except MissingAddressError as e:
            raise SerializationError(str(e))

        request = {
            "chainId": normalize_numeric(_field(tx_fields, "chain_id"), "chain_id"),
            "nonce": normalize_numeric(_field(tx_fields, "nonce"), "nonce", bits=64),
            "to": to,
            "value": str(normalize_numeric(_field(tx_fields, "value") or 0, "value")),
            "gas": normalize_numeric(_field(tx_fields, "gas"), "gas", bits=64),
            "data": to_hex(hex_to_bytes(_field(tx_fields, "data") or "0x", "data")),
            "authList": [self._auth_entry(auth) for auth in _field(tx_fields, "authorization_list") or []],
        }

        fee_cap = _field(tx_fields, "max_fee_per_gas")
        tip_cap = _field(tx_fields, "max_priority_fee_per_gas")
        gas_price = _field(tx_fields, "gas_price")
        if fee_cap is not None or tip_cap is not None:
            if fee_cap is None or tip_cap is None:
                raise SerializationError("max_fee_per_gas and max_priority_fee_per_gas must be given together")
            request["gasFeeCap"] = str(normalize_numeric(fee_cap, "max_fee_per_gas"))
            request["gasTipCap"] = str(normalize_numeric(tip_cap, "max_priority_fee_per_gas"))
        elif gas_price is not None:
            request["gasPrice"] = str(normalize_numeric(gas_price, "gas_price"))
        else:
            raise SerializationError("Either gas_price or max_fee_per_gas/max_priority_fee_per_gas is required")

        return request

    def _auth_entry(self, auth: Union[AuthorizationTuple, Mapping[str, Any]]) -> Dict[str, Any]:
        if not isinstance(auth, AuthorizationTuple):
            # Same shapes a signer may return: hex or int numbers, address key
            try:
                auth = AuthorizationTuple.from_signer_output(auth, None, None, None)
            except (MalformedSignatureError, TypeError, ValueError) as e:
                raise SerializationError(f"Invalid authorization tuple: {e}")

        v = auth.y_parity
        if v not in (0, 1):
            raise SerializationError(f"Authorization recovery id must be 0, 1, 27 or 28, got {auth.v}")

        try:
            address = normalize_address(auth.contract_address, "authorization contract_address")
        except MissingAddressError as e:
            raise SerializationError(str(e))

        return {
            "chainId": normalize_numeric(auth.chain_id, "authorization chain_id"),
            "address": address,
            "nonce": normalize_numeric(auth.nonce, "authorization nonce", bits=64),
            "r": to_hex(normalize_numeric(auth.r, "authorization r")),
            "s": to_hex(normalize_numeric(auth.s, "authorization s")),
            "v": v,
        }
