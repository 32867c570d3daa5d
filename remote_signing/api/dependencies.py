from __future__ import annotations

import structlog
from fastapi import Depends, Request, Response

from remote_signing.core.config import RemoteSigningSettings, get_settings
from remote_signing.engines import CryptoEngine, DssRestEngine, MockCryptoEngine
from remote_signing.services.session_store import SessionStore

logger = structlog.get_logger(__name__)

_session_store: SessionStore | None = None
_engine: CryptoEngine | None = None


def get_session_store(cfg: RemoteSigningSettings = Depends(get_settings)) -> SessionStore:
    global _session_store
    if _session_store is None:
        _session_store = SessionStore(ttl_seconds=cfg.session_ttl_seconds)
    return _session_store


def get_engine(cfg: RemoteSigningSettings = Depends(get_settings)) -> CryptoEngine:
    global _engine

    if cfg.mock_engine:
        if not isinstance(_engine, MockCryptoEngine):
            logger.warning("engine.mock_mode", hint="set REMOTE_SIGNING_MOCK_ENGINE=false to use the DSS service")
            _engine = MockCryptoEngine()
        return _engine

    needs_refresh = not isinstance(_engine, DssRestEngine) or _engine.base_url != cfg.dss_service_url.rstrip("/")
    if needs_refresh:
        if isinstance(_engine, DssRestEngine):
            _engine.close()
        _engine = DssRestEngine(cfg.dss_service_url, timeout=cfg.engine_timeout, mock_tsp=cfg.mock_tsp)
    return _engine


def current_session_id(request: Request, cfg: RemoteSigningSettings) -> str | None:
    return request.cookies.get(cfg.session_cookie_name) or None


def remember_session(response: Response, cfg: RemoteSigningSettings, session_id: str) -> None:
    response.set_cookie(cfg.session_cookie_name, session_id, httponly=True, samesite="lax")
