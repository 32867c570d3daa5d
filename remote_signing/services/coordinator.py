"""Signing session state machine.

    DRAFT -> CONFIGURED -> DATA_READY -> SIGNATURE_RECEIVED -> DOCUMENT_READY -> DOWNLOADED

Every transition runs inside a :class:`SessionStore` transaction, checks the
current state and only then advances it. Engine results are committed only
when the engine call succeeded, so a failed step leaves the session as it was.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from remote_signing.core.exceptions import (
    DigestPreparationFailed,
    FinalizationFailed,
    InvalidConfiguration,
    OutOfOrderRequest,
    SigningError,
)
from remote_signing.engines.base import CryptoEngine, EngineError
from remote_signing.enums import EncryptionAlgorithm, EnumParseError, parse_encryption_algorithm
from remote_signing.models import SessionState, SignedDocument, SigningSession, SigningVariant
from remote_signing.services.configuration import ConfigurationForm, parse_configuration
from remote_signing.services.session_store import SessionHandle, SessionStore

logger = structlog.get_logger(__name__)

PREPARE_FROM = frozenset({SessionState.CONFIGURED, SessionState.DATA_READY, SessionState.SIGNATURE_RECEIVED})
ACCEPT_FROM = frozenset({SessionState.DATA_READY})
FINALIZE_FROM = frozenset({SessionState.SIGNATURE_RECEIVED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SigningCoordinator:
    """Drives one variant of the remote signing flow for sessions held in a store."""

    def __init__(
        self,
        variant: SigningVariant,
        engine: CryptoEngine,
        store: SessionStore,
        clock: Callable[[], datetime] | None = None,
    ):
        self.variant = variant
        self._engine = engine
        self._store = store
        self._clock = clock or _utcnow

    def open_form(self, session_id: str) -> SigningSession:
        """Start a fresh draft for ``session_id``, dropping any earlier run."""
        with self._store.transaction(session_id, self.variant, create=True) as handle:
            handle.session = SigningSession(variant=self.variant)
            return handle.session

    def configure(self, session_id: str, form: ConfigurationForm) -> SigningSession:
        """Draft -> Configured.

        Raises:
            InvalidConfiguration: the submission is rejected and the session is left untouched.
        """
        try:
            configuration = parse_configuration(self.variant, form)
        except InvalidConfiguration as exc:
            logger.info("signing.configuration_rejected", variant=self.variant.name, errors=exc.errors)
            raise

        with self._store.transaction(session_id, self.variant, create=True) as handle:
            session = SigningSession(variant=self.variant, configuration=configuration)
            session.advance(SessionState.CONFIGURED)
            handle.session = session

        logger.info(
            "signing.configured",
            variant=self.variant.name,
            signature_form=configuration.signature_form.value,
            signature_level=configuration.signature_level.value,
            digest_algorithm=configuration.digest_algorithm.value,
            container_type=configuration.container_type.value if configuration.container_type else None,
            documents=len(configuration.documents),
        )
        return session

    def get_data_to_sign(
        self,
        session_id: str,
        signing_certificate: bytes,
        certificate_chain: Sequence[bytes],
        encryption_algorithm: EncryptionAlgorithm | str,
    ) -> bytes:
        """Configured -> DataReady.

        Sets the signing date, fetches a content timestamp when one was
        requested, and asks the engine for the data to sign. Calling it again
        before the document is finalized recomputes both the signing date and
        the data to sign and discards any signature value already received.
        """
        try:
            encryption = parse_encryption_algorithm(encryption_algorithm)
        except EnumParseError as exc:
            raise InvalidConfiguration([str(exc)]) from exc
        if not signing_certificate:
            raise InvalidConfiguration(["signingCertificate: a certificate is required"])

        with self._store.transaction(session_id, self.variant) as handle:
            session = self._require(handle, "get-data-to-sign", PREPARE_FROM)
            candidate = replace(
                session,
                encryption_algorithm=encryption,
                signing_certificate=bytes(signing_certificate),
                certificate_chain=tuple(bytes(cert) for cert in certificate_chain),
                signing_date=self._clock(),
                content_timestamp=None,
                data_to_sign=None,
                signature_value=None,
                signed_document=None,
                history=list(session.history),
            )
            if session.configuration.add_content_timestamp:
                candidate.content_timestamp = self._call_engine(
                    "get_content_timestamp", candidate, DigestPreparationFailed
                )
            candidate.data_to_sign = self._call_engine("get_data_to_sign", candidate, DigestPreparationFailed)
            candidate.advance(SessionState.DATA_READY)
            handle.session = candidate

        logger.info(
            "signing.data_to_sign_issued",
            variant=self.variant.name,
            encryption_algorithm=encryption.value,
            chain_length=len(candidate.certificate_chain),
            content_timestamp=candidate.content_timestamp is not None,
            size=len(candidate.data_to_sign),
            recomputed=session.state is not SessionState.CONFIGURED,
        )
        return candidate.data_to_sign

    def accept_signature_value(self, session_id: str, signature_value: bytes) -> None:
        """DataReady -> SignatureReceived. The value is stored unverified."""
        with self._store.transaction(session_id, self.variant) as handle:
            session = self._require(handle, "sign-document", ACCEPT_FROM)
            self._accept(session, signature_value)

    def finalize(self, session_id: str) -> SignedDocument:
        """SignatureReceived -> DocumentReady."""
        with self._store.transaction(session_id, self.variant) as handle:
            session = self._require(handle, "finalize", FINALIZE_FROM)
            return self._finalize(session)

    def sign_document(self, session_id: str, signature_value: bytes) -> SignedDocument:
        """Accept the signature value and finalize in one step."""
        with self._store.transaction(session_id, self.variant) as handle:
            session = self._require(handle, "sign-document", ACCEPT_FROM)
            self._accept(session, signature_value)
            return self._finalize(session)

    def _accept(self, session: SigningSession, signature_value: bytes) -> None:
        if not session.data_to_sign:
            raise OutOfOrderRequest("sign-document", session.state.value, [SessionState.DATA_READY.value])
        if not signature_value:
            raise InvalidConfiguration(["signatureValue: a signature value is required"])
        session.signature_value = bytes(signature_value)
        session.advance(SessionState.SIGNATURE_RECEIVED)
        logger.info("signing.signature_received", variant=self.variant.name, size=len(session.signature_value))

    def _finalize(self, session: SigningSession) -> SignedDocument:
        try:
            document = self._call_engine(self.variant.finalizer, session, FinalizationFailed)
        except FinalizationFailed:
            session.signature_value = None
            session.advance(SessionState.DATA_READY)
            raise
        session.signed_document = SignedDocument(
            content=bytes(document.content), name=document.name, mime_type=document.mime_type
        )
        session.advance(SessionState.DOCUMENT_READY)
        logger.info(
            "signing.document_ready",
            variant=self.variant.name,
            name=document.name,
            mime_type=document.mime_type,
            size=len(document.content),
        )
        return session.signed_document

    def _require(self, handle: SessionHandle | None, operation: str, allowed: frozenset[SessionState]) -> SigningSession:
        session = handle.session if handle is not None else None
        if session is None or session.state not in allowed:
            state = session.state.value if session is not None else None
            history = [s.value for s in session.history] if session is not None else []
            logger.warning(
                "signing.out_of_order", variant=self.variant.name, operation=operation, state=state, history=history
            )
            raise OutOfOrderRequest(operation, state, sorted(s.value for s in allowed))
        return session

    def _call_engine(self, operation: str, session: SigningSession, failure: type[SigningError]) -> Any:
        try:
            result = getattr(self._engine, operation)(session)
        except EngineError as exc:
            logger.error("signing.engine_failed", variant=self.variant.name, operation=operation, error=str(exc))
            raise failure(f"{operation} failed: {exc}", details={"operation": operation}) from exc
        if result is None or (isinstance(result, SignedDocument) and not result.content) or result == b"":
            logger.error("signing.engine_empty_result", variant=self.variant.name, operation=operation)
            raise failure(f"{operation} returned no result", details={"operation": operation})
        return result
