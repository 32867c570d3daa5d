"""Crypto engines with mock and production implementations."""

from .base import CryptoEngine, EngineError
from .dss import DssRestEngine
from .mock import MockCryptoEngine

__all__ = ["CryptoEngine", "DssRestEngine", "EngineError", "MockCryptoEngine"]
