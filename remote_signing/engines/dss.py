"""Crypto engine backed by a DSS-compatible remote signature REST service."""

from __future__ import annotations

import base64
import binascii
from typing import Any

import httpx
import structlog

from remote_signing.engines.base import CryptoEngine, EngineError
from remote_signing.enums import SignatureForm
from remote_signing.models import DocumentToSign, SignedDocument, SigningSession

logger = structlog.get_logger(__name__)

ONE_DOCUMENT = "signature/one-document"
MULTIPLE_DOCUMENTS = "signature/multiple-documents"

_DEFAULT_MIME_TYPES = {
    SignatureForm.CADES: "application/pkcs7-signature",
    SignatureForm.XADES: "text/xml",
}


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class DssRestEngine(CryptoEngine):
    """
    HTTP client for the DSS remote signature service.

    Single digest documents go through the ``one-document`` endpoints, uploaded
    document sets through ``multiple-documents``. The signing certificate and
    chain are forwarded in the order they were received.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        mock_tsp: bool = False,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._mock_tsp = mock_tsp
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)
        logger.info("dss_engine.initialized", base_url=self.base_url)

    @property
    def uses_mock_tsp(self) -> bool:
        return self._mock_tsp

    def close(self) -> None:
        self._client.close()

    def get_content_timestamp(self, session: SigningSession) -> bytes | None:
        body = self._request_body(session)
        result = self._post(f"{self._endpoint(session)}/getContentTimestamp", body)
        return _decode(result, "binaries")

    def get_data_to_sign(self, session: SigningSession) -> bytes | None:
        body = self._request_body(session)
        result = self._post(f"{self._endpoint(session)}/getDataToSign", body)
        return _decode(result, "bytes")

    def sign_digest(self, session: SigningSession) -> SignedDocument | None:
        return self._sign(ONE_DOCUMENT, session)

    def sign_document(self, session: SigningSession) -> SignedDocument | None:
        return self._sign(MULTIPLE_DOCUMENTS, session)

    def _sign(self, endpoint: str, session: SigningSession) -> SignedDocument | None:
        if session.signature_value is None:
            raise EngineError("signature value is required")
        body = self._request_body(session, endpoint)
        body["signatureValue"] = {
            "algorithm": f"{session.encryption_algorithm.wire_name}_{session.digest_algorithm.wire_name}",
            "value": _b64(session.signature_value),
        }
        result = self._post(f"{endpoint}/signDocument", body)
        content = _decode(result, "bytes")
        if not content:
            return None
        name = result.get("name") or _fallback_name(session)
        return SignedDocument(content=content, name=name, mime_type=result.get("mimeType") or _mime_type(session))

    def _endpoint(self, session: SigningSession) -> str:
        return ONE_DOCUMENT if session.variant.finalizer == "sign_digest" else MULTIPLE_DOCUMENTS

    def _request_body(self, session: SigningSession, endpoint: str | None = None) -> dict[str, Any]:
        endpoint = endpoint or self._endpoint(session)
        documents = [_remote_document(doc, session) for doc in session.documents]
        body: dict[str, Any] = {"parameters": self._parameters(session)}
        if endpoint == ONE_DOCUMENT:
            if len(documents) != 1:
                raise EngineError("one-document signing expects exactly one document")
            body["toSignDocument"] = documents[0]
        else:
            body["toSignDocuments"] = documents
        return body

    def _parameters(self, session: SigningSession) -> dict[str, Any]:
        if session.configuration is None or session.signing_certificate is None:
            raise EngineError("session is not ready for the remote signature service")
        parameters: dict[str, Any] = {
            "signingCertificate": {"encodedCertificate": _b64(session.signing_certificate)},
            "certificateChain": [{"encodedCertificate": _b64(cert)} for cert in session.certificate_chain],
            "signatureLevel": session.signature_level.wire_name,
            "signaturePackaging": "DETACHED",
            "digestAlgorithm": session.digest_algorithm.wire_name,
            "encryptionAlgorithm": session.encryption_algorithm.wire_name if session.encryption_algorithm else None,
            "bLevelParams": {
                "signingDate": int(session.signing_date.timestamp() * 1000) if session.signing_date else None,
            },
        }
        if session.container_type is not None:
            parameters["asicContainerType"] = session.container_type.wire_name
        if session.content_timestamp:
            parameters["contentTimestamps"] = [
                {"binaries": _b64(session.content_timestamp), "type": "CONTENT_TIMESTAMP"},
            ]
        return parameters

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(f"/{path}", json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("dss_engine.http_error", path=path, status_code=exc.response.status_code)
            raise EngineError(f"remote signature service returned {exc.response.status_code} for {path}") from exc
        except httpx.HTTPError as exc:
            logger.error("dss_engine.transport_error", path=path, error=str(exc))
            raise EngineError(f"remote signature service unreachable: {exc}") from exc
        except ValueError as exc:
            raise EngineError(f"remote signature service sent invalid JSON for {path}") from exc
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise EngineError(f"unexpected response shape from {path}")
        return payload


def _remote_document(document: DocumentToSign, session: SigningSession) -> dict[str, Any]:
    if document.is_digest:
        return {
            "bytes": _b64(document.digest),
            "digestAlgorithm": session.digest_algorithm.wire_name,
            "name": document.name,
        }
    return {"bytes": _b64(document.content), "digestAlgorithm": None, "name": document.name}


def _decode(payload: dict[str, Any], key: str) -> bytes | None:
    value = payload.get(key)
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EngineError(f"remote signature service sent malformed base64 in '{key}'") from exc


def _mime_type(session: SigningSession) -> str | None:
    if session.container_type is not None:
        return session.container_type.mime_type
    return _DEFAULT_MIME_TYPES.get(session.signature_form)


def _fallback_name(session: SigningSession) -> str:
    if session.container_type is not None:
        return f"container.{session.container_type.extension}"
    return session.documents[0].name if session.documents else "signed-document"
