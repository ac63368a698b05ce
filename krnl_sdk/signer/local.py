"""
Private-key signer backed by eth-account.
"""
import logging
from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from ..codec.rlp_codec import authorization_hash
from ..utils import hex_to_bytes, normalize_address, to_hex

logger = logging.getLogger(__name__)


class LocalSigner:
    """
    Signer holding a private key in process.

    Intended for scripts, tests and server-side agents; browser or embedded
    wallets should implement the Signer protocol themselves.
    """

    def __init__(self, priv_key: str):
        self._account: LocalAccount = Account.from_key(priv_key)
        self.address = self._account.address

    def sign_authorization(self, chain_id: int, contract_address: str, nonce: int) -> Dict[str, Any]:
        contract_address = normalize_address(contract_address, "contract_address")
        auth_hash = authorization_hash(chain_id, contract_address, nonce)
        signed = self._account.unsafe_sign_hash(auth_hash)
        logger.debug(f"Signed authorization for {contract_address} (chain={chain_id}, nonce={nonce})")
        return {
            "chainId": chain_id,
            "address": contract_address,
            "nonce": nonce,
            "r": signed.r,
            "s": signed.s,
            "v": signed.v,
        }

    def sign_hash(self, message_hash: str) -> str:
        signed = self._account.unsafe_sign_hash(self._hash_bytes(message_hash))
        return to_hex(bytes(signed.signature))

    def sign_message(self, message_hash: str) -> str:
        signable = encode_defunct(primitive=self._hash_bytes(message_hash))
        signed = self._account.sign_message(signable)
        return to_hex(bytes(signed.signature))

    @staticmethod
    def _hash_bytes(message_hash: Any) -> bytes:
        data = hex_to_bytes(message_hash, "message_hash")
        if len(data) != 32:
            raise ValueError(f"Expected a 32-byte hash, got {len(data)} bytes")
        return data

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address!r})"
