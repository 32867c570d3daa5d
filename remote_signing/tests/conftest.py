"""Shared fixtures for remote signing tests."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.padding import PKCS1v15
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient

from remote_signing.api.dependencies import get_engine, get_session_store
from remote_signing.core.config import RemoteSigningSettings, get_settings
from remote_signing.engines import MockCryptoEngine
from remote_signing.enums import DigestAlgorithm
from remote_signing.main import create_app
from remote_signing.models import SigningSession
from remote_signing.services.session_store import SessionStore

FIXED_SIGNING_DATE = datetime(2024, 5, 17, 9, 30, 0, tzinfo=timezone.utc)


def _issue_certificate(common_name: str, key: Any, issuer_name: str, issuer_key: Any, ca: bool) -> x509.Certificate:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_name)]))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key, hashes.SHA256())
    )


@dataclass
class Signer:
    """Plays the external signing agent: holds the key and signs data to sign."""

    key: Any
    certificate: bytes
    chain: list[bytes]
    encryption_algorithm: str
    signed: list[bytes] = field(default_factory=list)

    @property
    def certificate_b64(self) -> str:
        return base64.b64encode(self.certificate).decode("ascii")

    @property
    def chain_b64(self) -> list[str]:
        return [base64.b64encode(cert).decode("ascii") for cert in self.chain]

    def sign(self, data_to_sign: bytes, digest_algorithm: DigestAlgorithm) -> bytes:
        prehashed = Prehashed(getattr(hashes, digest_algorithm.value)())
        if isinstance(self.key, rsa.RSAPrivateKey):
            signature = self.key.sign(data_to_sign, PKCS1v15(), prehashed)
        else:
            signature = self.key.sign(data_to_sign, ec.ECDSA(prehashed))
        self.signed.append(data_to_sign)
        return signature

    def sign_b64(self, data_to_sign_b64: str, digest_algorithm: DigestAlgorithm) -> str:
        signature = self.sign(base64.b64decode(data_to_sign_b64), digest_algorithm)
        return base64.b64encode(signature).decode("ascii")


def _build_signer(leaf_key: Any, encryption_algorithm: str) -> Signer:
    root_key = ec.generate_private_key(ec.SECP256R1())
    intermediate_key = ec.generate_private_key(ec.SECP256R1())
    root = _issue_certificate("Test Root CA", root_key, "Test Root CA", root_key, ca=True)
    intermediate = _issue_certificate("Test Issuing CA", intermediate_key, "Test Root CA", root_key, ca=True)
    leaf = _issue_certificate("Test Signer", leaf_key, "Test Issuing CA", intermediate_key, ca=False)
    der = serialization.Encoding.DER
    leaf_der = leaf.public_bytes(der)
    return Signer(
        key=leaf_key,
        certificate=leaf_der,
        chain=[leaf_der, intermediate.public_bytes(der), root.public_bytes(der)],
        encryption_algorithm=encryption_algorithm,
    )


@pytest.fixture(scope="session")
def rsa_signer() -> Signer:
    return _build_signer(rsa.generate_private_key(public_exponent=65537, key_size=2048), "RSA")


@pytest.fixture(scope="session")
def ec_signer() -> Signer:
    return _build_signer(ec.generate_private_key(ec.SECP256R1()), "ECDSA")


@pytest.fixture()
def fixed_clock():
    return lambda: FIXED_SIGNING_DATE


@pytest.fixture()
def store() -> SessionStore:
    return SessionStore(ttl_seconds=1800)


class RecordingEngine(MockCryptoEngine):
    """Mock engine that remembers which operations ran and on what session."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, SigningSession]] = []

    def get_content_timestamp(self, session):
        self.calls.append(("get_content_timestamp", session))
        return super().get_content_timestamp(session)

    def get_data_to_sign(self, session):
        self.calls.append(("get_data_to_sign", session))
        return super().get_data_to_sign(session)

    def sign_digest(self, session):
        self.calls.append(("sign_digest", session))
        return super().sign_digest(session)

    def sign_document(self, session):
        self.calls.append(("sign_document", session))
        return super().sign_document(session)

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture()
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture()
def settings() -> RemoteSigningSettings:
    return RemoteSigningSettings(
        _env_file=None,
        log_json_output=False,
        mock_engine=True,
        nexu_url="http://nexu.test:9795",
        nexu_download_url="http://download.test/nexu",
    )


@pytest.fixture()
def client(settings: RemoteSigningSettings, engine: RecordingEngine, store: SessionStore):
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_session_store] = lambda: store

    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        test_client.close()


@pytest.fixture()
def sha256_digest_b64() -> str:
    return base64.b64encode(hashlib.sha256(b"quarterly report").digest()).decode("ascii")
