from __future__ import annotations

import re
from urllib.parse import quote

import structlog

from remote_signing.core.exceptions import DownloadNotReady
from remote_signing.models import SessionState, SignedDocument, SigningVariant
from remote_signing.services.session_store import SessionStore

logger = structlog.get_logger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
READY_STATES = frozenset({SessionState.DOCUMENT_READY, SessionState.DOWNLOADED})
_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")


class DownloadGate:
    """Hands out the signed document once a session has been finalized.

    Downloads are repeatable: the document stays in the session until it is
    re-configured or expires.
    """

    def __init__(self, variant: SigningVariant, store: SessionStore):
        self.variant = variant
        self._store = store

    def fetch(self, session_id: str | None) -> SignedDocument:
        session = None
        if session_id:
            with self._store.transaction(session_id, self.variant) as handle:
                session = handle.session if handle is not None else None
                if session is not None and session.state in READY_STATES and session.signed_document is not None:
                    if session.state is SessionState.DOCUMENT_READY:
                        session.advance(SessionState.DOWNLOADED)
                    logger.info("download.served", variant=self.variant.name, name=session.signed_document.name)
                    return session.signed_document

        state = session.state.value if session is not None else None
        logger.error("download.not_ready", variant=self.variant.name, state=state)
        raise DownloadNotReady("No signed document is available for this session", details={"state": state})


def download_headers(document: SignedDocument) -> dict[str, str]:
    return {
        "Content-Disposition": content_disposition(document.name),
        "Content-Transfer-Encoding": "binary",
    }


def media_type(document: SignedDocument) -> str:
    return document.mime_type or DEFAULT_MIME_TYPE


def content_disposition(filename: str) -> str:
    # control characters would break the header line
    filename = _CONTROL_CHARACTERS.sub("_", filename)
    fallback = filename.encode("ascii", "replace").decode("ascii").replace("\\", "\\\\").replace('"', '\\"')
    if fallback == filename.replace("\\", "\\\\").replace('"', '\\"'):
        return f'attachment; filename="{fallback}"'
    # non-ASCII names also get an RFC 5987 parameter
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
