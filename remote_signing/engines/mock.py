"""In-process crypto engine for development and tests.

The data to sign is the digest of a canonical JSON rendering of the signed
attributes, so the signing agent signs it as a pre-hashed value. Finalization
verifies the returned signature value with the signing certificate's public
key before emitting a JSON signature envelope, or an ASiC-style ZIP when a
container type was requested.
"""

from __future__ import annotations

import base64
import io
import json
import zipfile
from pathlib import PurePosixPath
from typing import Any

import structlog
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa
from cryptography.hazmat.primitives.asymmetric.padding import PKCS1v15
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, encode_dss_signature

from remote_signing.engines.base import CryptoEngine, EngineError
from remote_signing.enums import ASiCContainerType, DigestAlgorithm, EncryptionAlgorithm
from remote_signing.models import SignedDocument, SigningConfiguration, SigningSession

logger = structlog.get_logger(__name__)

ENVELOPE_MIME_TYPE = "application/json"
MOCK_TSA_NAME = "CN=Mock TSA"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _canonical(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _hash_for(algorithm: DigestAlgorithm) -> hashes.HashAlgorithm:
    return getattr(hashes, algorithm.value)()


class MockCryptoEngine(CryptoEngine):
    @property
    def uses_mock_tsp(self) -> bool:
        return True

    def get_content_timestamp(self, session: SigningSession) -> bytes:
        cfg = _configuration(session)
        if session.signing_date is None:
            raise EngineError("signing date must be set before requesting a content timestamp")
        imprint = cfg.digest_algorithm.digest(b"".join(doc.digest_with(cfg.digest_algorithm) for doc in cfg.documents))
        token = {
            "type": "CONTENT_TIMESTAMP",
            "tsa": MOCK_TSA_NAME,
            "genTime": session.signing_date.isoformat(),
            "hashAlgorithm": cfg.digest_algorithm.value,
            "messageImprint": _b64(imprint),
        }
        return _canonical(token)

    def get_data_to_sign(self, session: SigningSession) -> bytes:
        cfg = _configuration(session)
        return cfg.digest_algorithm.digest(self.signed_attributes(session))

    def signed_attributes(self, session: SigningSession) -> bytes:
        cfg = _configuration(session)
        if session.signing_certificate is None or session.encryption_algorithm is None:
            raise EngineError("signing certificate and encryption algorithm are required")
        if session.signing_date is None:
            raise EngineError("signing date is required")
        algorithm = cfg.digest_algorithm
        attributes = {
            "signatureForm": cfg.signature_form.value,
            "signatureLevel": cfg.signature_level.value,
            "digestAlgorithm": algorithm.value,
            "encryptionAlgorithm": session.encryption_algorithm.value,
            "signingTime": session.signing_date.isoformat(),
            "signingCertificate": _b64(algorithm.digest(session.signing_certificate)),
            "certificateChain": [_b64(algorithm.digest(cert)) for cert in session.certificate_chain],
            "documents": [{"name": doc.name, "digest": _b64(doc.digest_with(algorithm))} for doc in cfg.documents],
            "containerType": cfg.container_type.value if cfg.container_type else None,
            "contentTimestamp": _b64(session.content_timestamp) if session.content_timestamp else None,
        }
        return _canonical(attributes)

    def sign_digest(self, session: SigningSession) -> SignedDocument:
        cfg = _configuration(session)
        if len(cfg.documents) != 1 or not cfg.documents[0].is_digest:
            raise EngineError("digest signing expects exactly one digest document")
        envelope = self._signature_envelope(session)
        return SignedDocument(content=envelope, name=cfg.documents[0].name, mime_type=ENVELOPE_MIME_TYPE)

    def sign_document(self, session: SigningSession) -> SignedDocument:
        cfg = _configuration(session)
        if not cfg.documents:
            raise EngineError("no documents to sign")
        envelope = self._signature_envelope(session)
        if cfg.container_type is None:
            return SignedDocument(content=envelope, name="signatures.json", mime_type=ENVELOPE_MIME_TYPE)
        container = _build_container(cfg, envelope)
        return SignedDocument(
            content=container,
            name=f"container.{cfg.container_type.extension}",
            mime_type=cfg.container_type.mime_type,
        )

    def _signature_envelope(self, session: SigningSession) -> bytes:
        cfg = _configuration(session)
        if not session.data_to_sign or not session.signature_value:
            raise EngineError("data to sign and signature value are required")
        if self.get_data_to_sign(session) != session.data_to_sign:
            raise EngineError("session parameters changed since the data to sign was issued")
        _verify(session, session.data_to_sign)
        logger.info(
            "mock_engine.signature_verified",
            signature_form=cfg.signature_form.value,
            documents=len(cfg.documents),
        )
        envelope = {
            "format": "mock-detached-signature",
            "signatureForm": cfg.signature_form.value,
            "signatureLevel": cfg.signature_level.value,
            "signatureAlgorithm": f"{session.encryption_algorithm.wire_name}_{cfg.digest_algorithm.wire_name}",
            "signedAttributes": _b64(self.signed_attributes(session)),
            "signatureValue": _b64(session.signature_value),
            "signingCertificate": _b64(session.signing_certificate),
            "certificateChain": [_b64(cert) for cert in session.certificate_chain],
            "contentTimestamp": _b64(session.content_timestamp) if session.content_timestamp else None,
        }
        return json.dumps(envelope, indent=2, sort_keys=True).encode("utf-8")


def _configuration(session: SigningSession) -> SigningConfiguration:
    if session.configuration is None:
        raise EngineError("session is not configured")
    return session.configuration


def _verify(session: SigningSession, payload: bytes) -> None:
    try:
        certificate = x509.load_der_x509_certificate(session.signing_certificate)
        public_key = certificate.public_key()
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise EngineError(f"signing certificate cannot be loaded: {exc}") from exc

    prehashed = Prehashed(_hash_for(session.digest_algorithm))
    encryption = session.encryption_algorithm
    signature = session.signature_value
    try:
        if encryption is EncryptionAlgorithm.RSA and isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, payload, PKCS1v15(), prehashed)
        elif encryption is EncryptionAlgorithm.ECDSA and isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, payload, ec.ECDSA(prehashed))
        elif encryption is EncryptionAlgorithm.PLAIN_ECDSA and isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(_plain_to_der(signature), payload, ec.ECDSA(prehashed))
        elif encryption is EncryptionAlgorithm.DSA and isinstance(public_key, dsa.DSAPublicKey):
            public_key.verify(signature, payload, prehashed)
        else:
            raise EngineError(f"{encryption.value} signatures cannot be verified with a {type(public_key).__name__}")
    except InvalidSignature as exc:
        raise EngineError("signature value does not match the data to sign") from exc


def _plain_to_der(signature: bytes) -> bytes:
    if not signature or len(signature) % 2:
        raise EngineError("plain ECDSA signature must hold r and s of equal length")
    half = len(signature) // 2
    r = int.from_bytes(signature[:half], "big")
    s = int.from_bytes(signature[half:], "big")
    return encode_dss_signature(r, s)


def _build_container(cfg: SigningConfiguration, envelope: bytes) -> bytes:
    container_type = cfg.container_type
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        # mimetype must be the first entry and stored uncompressed
        archive.writestr(zipfile.ZipInfo("mimetype"), container_type.mime_type, compress_type=zipfile.ZIP_STORED)
        if container_type is ASiCContainerType.ASIC_S and len(cfg.documents) > 1:
            archive.writestr(zipfile.ZipInfo("package.zip"), _zip_documents(cfg), compress_type=zipfile.ZIP_STORED)
        else:
            for doc in cfg.documents:
                archive.writestr(zipfile.ZipInfo(_entry_name(doc.name)), doc.content, compress_type=zipfile.ZIP_DEFLATED)
        archive.writestr(zipfile.ZipInfo("META-INF/signature.json"), envelope, compress_type=zipfile.ZIP_DEFLATED)
    return buffer.getvalue()


def _zip_documents(cfg: SigningConfiguration) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for doc in cfg.documents:
            archive.writestr(zipfile.ZipInfo(_entry_name(doc.name)), doc.content, compress_type=zipfile.ZIP_DEFLATED)
    return buffer.getvalue()


def _entry_name(name: str) -> str:
    return PurePosixPath(name).name or "document"
