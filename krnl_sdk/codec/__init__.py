"""
Transaction codec for EIP-7702 set-code transactions.
"""
from .bridge import CodecBridge
from .rlp_codec import RlpTransactionCodec, TransactionCodec, authorization_hash

__all__ = ["CodecBridge", "RlpTransactionCodec", "TransactionCodec", "authorization_hash"]
