"""
Authentication helpers for the Relay service.
"""

from .shared_secret import SharedSecretGuard

__all__ = ["SharedSecretGuard"]
