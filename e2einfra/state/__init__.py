"""Shared suite state and its wire codec."""

from .codec import SharedStateCodec, decode, encode
from .model import SharedSuiteState, freeze_fixtures, thaw_fixtures

__all__ = [
    "SharedSuiteState",
    "SharedStateCodec",
    "encode",
    "decode",
    "freeze_fixtures",
    "thaw_fixtures",
]
