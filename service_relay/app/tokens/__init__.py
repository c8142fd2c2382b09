"""
Single-use relay token store and issuer.
"""

from .store import TokenStore, TokenEntry
from .issuer import TokenIssuer, TokenRequest, IssuedToken

__all__ = ["TokenStore", "TokenEntry", "TokenIssuer", "TokenRequest", "IssuedToken"]
