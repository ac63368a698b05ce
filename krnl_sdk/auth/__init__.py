"""
EIP-7702 delegation management.
"""
from .manager import AuthorizationManager

__all__ = ["AuthorizationManager"]
