"""Crypto engine interface."""

from abc import ABC, abstractmethod

from remote_signing.models import SignedDocument, SigningSession


class EngineError(RuntimeError):
    pass


class CryptoEngine(ABC):
    """Computes data to sign, content timestamps and signed documents.

    Implementations receive the whole session and read what they need from it.
    They raise :class:`EngineError` when they cannot produce a result.
    """

    @property
    def uses_mock_tsp(self) -> bool:
        return False

    @abstractmethod
    def get_content_timestamp(self, session: SigningSession) -> bytes | None:
        """Return a timestamp token over the documents to sign."""

    @abstractmethod
    def get_data_to_sign(self, session: SigningSession) -> bytes | None:
        """Return the byte sequence the signing agent must sign."""

    @abstractmethod
    def sign_digest(self, session: SigningSession) -> SignedDocument | None:
        """Assemble the signature over a single client-computed digest."""

    @abstractmethod
    def sign_document(self, session: SigningSession) -> SignedDocument | None:
        """Assemble the signature over one or more uploaded documents."""
