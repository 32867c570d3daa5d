from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from remote_signing.enums import ASiCContainerType, DigestAlgorithm, EncryptionAlgorithm, SignatureForm, SignatureLevel

HISTORY_LIMIT = 32


class SessionState(str, Enum):
    DRAFT = "DRAFT"
    CONFIGURED = "CONFIGURED"
    DATA_READY = "DATA_READY"
    SIGNATURE_RECEIVED = "SIGNATURE_RECEIVED"
    DOCUMENT_READY = "DOCUMENT_READY"
    DOWNLOADED = "DOWNLOADED"


@dataclass(frozen=True, slots=True)
class SigningVariant:
    """Everything that differs between the single- and multi-document flows."""

    name: str
    route: str
    digest_algorithms: tuple[DigestAlgorithm, ...]
    container_types: tuple[ASiCContainerType, ...]
    finalizer: str
    default_digest_algorithm: DigestAlgorithm | None = None

    @property
    def accepts_container_type(self) -> bool:
        return bool(self.container_types)


SIGNATURE_FORMS: tuple[SignatureForm, ...] = (SignatureForm.CADES, SignatureForm.XADES)

SINGLE_DOCUMENT = SigningVariant(
    name="single-document",
    route="sign-a-digest",
    digest_algorithms=(
        DigestAlgorithm.SHA1,
        DigestAlgorithm.SHA256,
        DigestAlgorithm.SHA384,
        DigestAlgorithm.SHA512,
    ),
    container_types=(),
    finalizer="sign_digest",
    default_digest_algorithm=DigestAlgorithm.SHA256,
)

MULTI_DOCUMENT = SigningVariant(
    name="multi-document",
    route="sign-multiple-documents",
    digest_algorithms=(
        DigestAlgorithm.SHA1,
        DigestAlgorithm.SHA224,
        DigestAlgorithm.SHA256,
        DigestAlgorithm.SHA384,
        DigestAlgorithm.SHA512,
    ),
    container_types=tuple(ASiCContainerType),
    finalizer="sign_document",
)


@dataclass(frozen=True, slots=True)
class DocumentToSign:
    """A document submitted for signing.

    Digest documents carry only the client-computed ``digest``; the content
    itself never reaches the server.
    """

    name: str
    content: bytes = b""
    mime_type: str | None = None
    digest: bytes | None = None

    @property
    def is_digest(self) -> bool:
        return self.digest is not None

    def digest_with(self, algorithm: DigestAlgorithm) -> bytes:
        if self.digest is not None:
            return self.digest
        return algorithm.digest(self.content)


@dataclass(frozen=True, slots=True)
class SignedDocument:
    content: bytes
    name: str
    mime_type: str | None = None


@dataclass(frozen=True, slots=True)
class SigningConfiguration:
    """Validated result of a configuration form submission."""

    signature_form: SignatureForm
    signature_level: SignatureLevel
    digest_algorithm: DigestAlgorithm
    documents: tuple[DocumentToSign, ...]
    container_type: ASiCContainerType | None = None
    add_content_timestamp: bool = False


@dataclass(slots=True)
class SigningSession:
    """In-progress signing context for one browser session and one variant."""

    variant: SigningVariant
    state: SessionState = SessionState.DRAFT
    configuration: SigningConfiguration | None = None
    encryption_algorithm: EncryptionAlgorithm | None = None
    signing_certificate: bytes | None = None
    certificate_chain: tuple[bytes, ...] = ()
    signing_date: datetime | None = None
    content_timestamp: bytes | None = None
    data_to_sign: bytes | None = None
    signature_value: bytes | None = None
    signed_document: SignedDocument | None = None
    # previous states, oldest first, capped at HISTORY_LIMIT; logged on out-of-order calls
    history: list[SessionState] = field(default_factory=list)

    @property
    def signature_form(self) -> SignatureForm | None:
        return self.configuration.signature_form if self.configuration else None

    @property
    def signature_level(self) -> SignatureLevel | None:
        return self.configuration.signature_level if self.configuration else None

    @property
    def digest_algorithm(self) -> DigestAlgorithm | None:
        return self.configuration.digest_algorithm if self.configuration else None

    @property
    def container_type(self) -> ASiCContainerType | None:
        return self.configuration.container_type if self.configuration else None

    @property
    def documents(self) -> tuple[DocumentToSign, ...]:
        return self.configuration.documents if self.configuration else ()

    def advance(self, state: SessionState) -> None:
        self.history.append(self.state)
        del self.history[:-HISTORY_LIMIT]
        self.state = state
