"""Unit tests for the signing session state machine."""

from __future__ import annotations

import base64
import hashlib
import threading
from datetime import timedelta

import pytest

from remote_signing.core.exceptions import (
    DigestPreparationFailed,
    FinalizationFailed,
    InvalidConfiguration,
    OutOfOrderRequest,
)
from remote_signing.engines import EngineError
from remote_signing.enums import DigestAlgorithm
from remote_signing.models import HISTORY_LIMIT, MULTI_DOCUMENT, SINGLE_DOCUMENT, DocumentToSign, SessionState
from remote_signing.services.configuration import ConfigurationForm
from remote_signing.services.coordinator import SigningCoordinator
from remote_signing.tests.conftest import FIXED_SIGNING_DATE, RecordingEngine

SESSION = "session-1"


class SteppingClock:
    """Returns a signing date one minute later on every call."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return FIXED_SIGNING_DATE + timedelta(minutes=self.calls)


class NoDataEngine(RecordingEngine):
    def get_data_to_sign(self, session):
        self.calls.append(("get_data_to_sign", session))
        return None


class EmptyDataEngine(RecordingEngine):
    def get_data_to_sign(self, session):
        self.calls.append(("get_data_to_sign", session))
        return b""


class UnreachableEngine(RecordingEngine):
    def get_data_to_sign(self, session):
        self.calls.append(("get_data_to_sign", session))
        raise EngineError("connection refused")


class TimestampFailingEngine(RecordingEngine):
    def get_content_timestamp(self, session):
        self.calls.append(("get_content_timestamp", session))
        raise EngineError("timestamp authority unavailable")


def _digest_form(**overrides) -> ConfigurationForm:
    values = {
        "signature_form": "CAdES",
        "signature_level": "XAdES-BASELINE-B",
        "digest_algorithm": "SHA256",
        "document_name": "quarterly.pdf",
        "digest_to_sign": base64.b64encode(hashlib.sha256(b"quarterly report").digest()).decode(),
    }
    values.update(overrides)
    return ConfigurationForm(**values)


@pytest.fixture()
def coordinator(engine, store, fixed_clock) -> SigningCoordinator:
    return SigningCoordinator(SINGLE_DOCUMENT, engine, store, clock=fixed_clock)


def _prepare(coordinator: SigningCoordinator, signer) -> bytes:
    return coordinator.get_data_to_sign(
        SESSION,
        signing_certificate=signer.certificate,
        certificate_chain=signer.chain,
        encryption_algorithm=signer.encryption_algorithm,
    )


def test_full_digest_flow(coordinator, engine, store, rsa_signer):
    coordinator.open_form(SESSION)
    coordinator.configure(SESSION, _digest_form())

    data_to_sign = _prepare(coordinator, rsa_signer)
    assert len(data_to_sign) == 32

    document = coordinator.sign_document(SESSION, rsa_signer.sign(data_to_sign, DigestAlgorithm.SHA256))

    assert document.name == "quarterly.pdf"
    assert document.mime_type == "application/json"
    session = store.get(SESSION, SINGLE_DOCUMENT)
    assert session.state is SessionState.DOCUMENT_READY
    assert session.signing_date == FIXED_SIGNING_DATE
    assert session.history == [
        SessionState.DRAFT,
        SessionState.CONFIGURED,
        SessionState.DATA_READY,
        SessionState.SIGNATURE_RECEIVED,
    ]
    assert engine.operations()[0] == "get_data_to_sign"
    assert "sign_digest" in engine.operations()


def test_sign_document_before_data_to_sign_is_refused(coordinator, engine, store):
    coordinator.configure(SESSION, _digest_form())

    with pytest.raises(OutOfOrderRequest) as exc_info:
        coordinator.sign_document(SESSION, b"\x01" * 256)

    assert exc_info.value.state == SessionState.CONFIGURED.value
    assert engine.operations() == []
    assert store.get(SESSION, SINGLE_DOCUMENT).state is SessionState.CONFIGURED


def test_data_to_sign_requires_configuration(coordinator, engine, rsa_signer):
    with pytest.raises(OutOfOrderRequest) as exc_info:
        _prepare(coordinator, rsa_signer)
    assert exc_info.value.state is None

    coordinator.open_form(SESSION)
    with pytest.raises(OutOfOrderRequest) as exc_info:
        _prepare(coordinator, rsa_signer)
    assert exc_info.value.state == SessionState.DRAFT.value
    assert engine.operations() == []


def test_repeated_data_to_sign_overwrites_previous_run(engine, store, rsa_signer):
    clock = SteppingClock()
    coordinator = SigningCoordinator(SINGLE_DOCUMENT, engine, store, clock=clock)
    coordinator.configure(SESSION, _digest_form())

    first = _prepare(coordinator, rsa_signer)
    coordinator.accept_signature_value(SESSION, rsa_signer.sign(first, DigestAlgorithm.SHA256))
    second = _prepare(coordinator, rsa_signer)

    assert first != second
    session = store.get(SESSION, SINGLE_DOCUMENT)
    assert session.state is SessionState.DATA_READY
    assert session.data_to_sign == second
    assert session.signing_date == FIXED_SIGNING_DATE + timedelta(minutes=2)
    assert session.signature_value is None

    # a signature over the first payload no longer matches
    with pytest.raises(FinalizationFailed):
        coordinator.sign_document(SESSION, rsa_signer.sign(first, DigestAlgorithm.SHA256))
    document = coordinator.sign_document(SESSION, rsa_signer.sign(second, DigestAlgorithm.SHA256))
    assert document.content


def test_data_to_sign_after_finalization_is_refused(coordinator, rsa_signer):
    coordinator.configure(SESSION, _digest_form())
    data_to_sign = _prepare(coordinator, rsa_signer)
    coordinator.sign_document(SESSION, rsa_signer.sign(data_to_sign, DigestAlgorithm.SHA256))

    with pytest.raises(OutOfOrderRequest):
        _prepare(coordinator, rsa_signer)


def test_content_timestamp_is_fetched_before_data_to_sign(coordinator, engine, store, rsa_signer):
    coordinator.configure(SESSION, _digest_form(add_content_timestamp=True))

    _prepare(coordinator, rsa_signer)

    assert engine.operations() == ["get_content_timestamp", "get_data_to_sign"]
    session = store.get(SESSION, SINGLE_DOCUMENT)
    assert session.content_timestamp is not None
    assert engine.calls[1][1].content_timestamp == session.content_timestamp


@pytest.mark.parametrize(
    ("engine_cls", "timestamp", "operation"),
    [
        (NoDataEngine, False, "get_data_to_sign"),
        (EmptyDataEngine, False, "get_data_to_sign"),
        (UnreachableEngine, False, "get_data_to_sign"),
        (TimestampFailingEngine, True, "get_content_timestamp"),
    ],
)
def test_failed_preparation_leaves_session_unchanged(store, fixed_clock, rsa_signer, engine_cls, timestamp, operation):
    engine = engine_cls()
    coordinator = SigningCoordinator(SINGLE_DOCUMENT, engine, store, clock=fixed_clock)
    coordinator.configure(SESSION, _digest_form(add_content_timestamp=timestamp))

    with pytest.raises(DigestPreparationFailed) as exc_info:
        _prepare(coordinator, rsa_signer)

    assert exc_info.value.status_code == 502
    assert exc_info.value.details == {"operation": operation}
    assert engine.operations()[-1] == operation

    session = store.get(SESSION, SINGLE_DOCUMENT)
    assert session.state is SessionState.CONFIGURED
    assert session.data_to_sign is None
    assert session.signing_certificate is None
    assert session.signing_date is None


def test_failed_finalization_returns_to_data_ready(coordinator, store, rsa_signer):
    coordinator.configure(SESSION, _digest_form())
    data_to_sign = _prepare(coordinator, rsa_signer)

    with pytest.raises(FinalizationFailed) as exc_info:
        coordinator.sign_document(SESSION, b"\x00" * 256)
    assert exc_info.value.details == {"operation": "sign_digest"}

    session = store.get(SESSION, SINGLE_DOCUMENT)
    assert session.state is SessionState.DATA_READY
    assert session.signature_value is None
    assert session.signed_document is None

    coordinator.sign_document(SESSION, rsa_signer.sign(data_to_sign, DigestAlgorithm.SHA256))
    assert store.get(SESSION, SINGLE_DOCUMENT).state is SessionState.DOCUMENT_READY


def test_certificate_chain_order_reaches_finalization(coordinator, engine, rsa_signer):
    coordinator.configure(SESSION, _digest_form())
    data_to_sign = _prepare(coordinator, rsa_signer)
    coordinator.sign_document(SESSION, rsa_signer.sign(data_to_sign, DigestAlgorithm.SHA256))

    finalized = [session for name, session in engine.calls if name == "sign_digest"]
    assert len(finalized) == 1
    assert finalized[0].certificate_chain == tuple(rsa_signer.chain)
    assert finalized[0].signing_certificate == rsa_signer.certificate


def test_accept_and_finalize_as_separate_steps(coordinator, store, ec_signer):
    coordinator.configure(SESSION, _digest_form())
    with pytest.raises(OutOfOrderRequest):
        coordinator.finalize(SESSION)

    data_to_sign = _prepare(coordinator, ec_signer)
    coordinator.accept_signature_value(SESSION, ec_signer.sign(data_to_sign, DigestAlgorithm.SHA256))
    assert store.get(SESSION, SINGLE_DOCUMENT).state is SessionState.SIGNATURE_RECEIVED

    document = coordinator.finalize(SESSION)
    assert document.name == "quarterly.pdf"


def test_rejected_configuration_keeps_existing_session(coordinator, store, rsa_signer):
    coordinator.configure(SESSION, _digest_form())
    _prepare(coordinator, rsa_signer)

    with pytest.raises(InvalidConfiguration):
        coordinator.configure(SESSION, _digest_form(digest_algorithm="MD5"))

    assert store.get(SESSION, SINGLE_DOCUMENT).state is SessionState.DATA_READY


def test_reconfiguration_starts_a_new_run(coordinator, store, rsa_signer):
    coordinator.configure(SESSION, _digest_form())
    _prepare(coordinator, rsa_signer)

    coordinator.configure(SESSION, _digest_form(signature_form="XAdES"))

    session = store.get(SESSION, SINGLE_DOCUMENT)
    assert session.state is SessionState.CONFIGURED
    assert session.data_to_sign is None


def test_unknown_encryption_algorithm_is_rejected(coordinator, rsa_signer):
    coordinator.configure(SESSION, _digest_form())

    with pytest.raises(InvalidConfiguration) as exc_info:
        coordinator.get_data_to_sign(
            SESSION,
            signing_certificate=rsa_signer.certificate,
            certificate_chain=rsa_signer.chain,
            encryption_algorithm="ELGAMAL",
        )

    assert exc_info.value.errors[0].startswith("encryptionAlgorithm")


def test_concurrent_sign_document_finalizes_once(coordinator, engine, rsa_signer):
    coordinator.configure(SESSION, _digest_form())
    signature = rsa_signer.sign(_prepare(coordinator, rsa_signer), DigestAlgorithm.SHA256)
    start = threading.Barrier(2)
    outcomes: list[str] = []

    def worker() -> None:
        start.wait()
        try:
            coordinator.sign_document(SESSION, signature)
            outcomes.append("signed")
        except OutOfOrderRequest:
            outcomes.append("out-of-order")

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["out-of-order", "signed"]
    assert engine.operations().count("sign_digest") == 1


def test_multi_document_flow_with_container(engine, store, fixed_clock, rsa_signer):
    coordinator = SigningCoordinator(MULTI_DOCUMENT, engine, store, clock=fixed_clock)
    coordinator.configure(
        SESSION,
        ConfigurationForm(
            signature_form="XAdES",
            signature_level="XAdES-BASELINE-B",
            digest_algorithm="SHA224",
            container_type="ASiC-S",
            documents=[DocumentToSign(name="note.txt", content=b"hello")],
        ),
    )

    data_to_sign = _prepare(coordinator, rsa_signer)
    assert len(data_to_sign) == 28

    document = coordinator.sign_document(SESSION, rsa_signer.sign(data_to_sign, DigestAlgorithm.SHA224))

    assert document.name == "container.asics"
    assert document.mime_type == "application/vnd.etsi.asic-s+zip"
    assert "sign_document" in engine.operations()
    assert store.get(SESSION, SINGLE_DOCUMENT) is None


def test_state_history_is_capped(coordinator, store, rsa_signer):
    coordinator.configure(SESSION, _digest_form())
    for _ in range(HISTORY_LIMIT + 10):
        _prepare(coordinator, rsa_signer)

    session = store.get(SESSION, SINGLE_DOCUMENT)
    assert len(session.history) == HISTORY_LIMIT
    assert session.history[-1] is SessionState.DATA_READY
