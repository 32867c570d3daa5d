"""Routes for the remote signing flow.

Both variants expose the same five calls under their own prefix:

    GET  /<route>                    configuration form options
    POST /<route>                    submit configuration
    POST /<route>/get-data-to-sign   certificate material in, data to sign out
    POST /<route>/sign-document      signature value in, download link out
    GET  /<route>/download           signed document
"""

from __future__ import annotations

import base64
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse

from remote_signing.api.dependencies import current_session_id, get_engine, get_session_store, remember_session
from remote_signing.api.models import (
    ConfigurationRejectedResponse,
    DataToSignParams,
    FormModelResponse,
    GetDataToSignResponse,
    SignatureValueRequest,
    SignDocumentResponse,
    SigningProcessResponse,
)
from remote_signing.core.config import RemoteSigningSettings, get_settings
from remote_signing.core.exceptions import InvalidConfiguration, OutOfOrderRequest
from remote_signing.engines import CryptoEngine
from remote_signing.enums import SignatureLevel
from remote_signing.models import MULTI_DOCUMENT, SIGNATURE_FORMS, SINGLE_DOCUMENT, DocumentToSign, SigningVariant
from remote_signing.services.configuration import ConfigurationForm
from remote_signing.services.coordinator import SigningCoordinator
from remote_signing.services.download import DownloadGate, download_headers, media_type
from remote_signing.services.session_store import SessionStore

DOWNLOAD_PATH = "download"


def form_model(variant: SigningVariant, cfg: RemoteSigningSettings, engine: CryptoEngine) -> FormModelResponse:
    default = variant.default_digest_algorithm
    return FormModelResponse(
        signature_forms=[form.value for form in SIGNATURE_FORMS],
        signature_levels=[level.value for level in SignatureLevel],
        digest_algorithms=[algo.value for algo in variant.digest_algorithms],
        default_digest_algorithm=default.value if default else None,
        container_types=[container.value for container in variant.container_types],
        download_nexu_url=cfg.nexu_download_url,
        is_mock_used=engine.uses_mock_tsp,
    )


def create_router(variant: SigningVariant) -> APIRouter:
    router = APIRouter(prefix=f"/{variant.route}", tags=[variant.name])

    def get_coordinator(
        engine: CryptoEngine = Depends(get_engine),
        store: SessionStore = Depends(get_session_store),
    ) -> SigningCoordinator:
        return SigningCoordinator(variant, engine, store)

    def get_download_gate(store: SessionStore = Depends(get_session_store)) -> DownloadGate:
        return DownloadGate(variant, store)

    def accept_configuration(
        request: Request,
        response: Response,
        form: ConfigurationForm,
        coordinator: SigningCoordinator,
        cfg: RemoteSigningSettings,
        engine: CryptoEngine,
    ) -> SigningProcessResponse | JSONResponse:
        session_id = current_session_id(request, cfg) or SessionStore.new_session_id()
        try:
            session = coordinator.configure(session_id, form)
        except InvalidConfiguration as exc:
            rejected = JSONResponse(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                content=ConfigurationRejectedResponse(
                    message=exc.message,
                    errors=exc.errors,
                    form=form_model(variant, cfg, engine),
                ).model_dump(by_alias=True),
            )
            remember_session(rejected, cfg, session_id)
            return rejected

        remember_session(response, cfg, session_id)
        return SigningProcessResponse(
            root_url=variant.route,
            nexu_url=cfg.nexu_url,
            digest_algorithm=session.digest_algorithm.value,
            state=session.state.value,
        )

    @router.get("", response_model=FormModelResponse)
    def show_form(
        request: Request,
        response: Response,
        coordinator: SigningCoordinator = Depends(get_coordinator),
        cfg: RemoteSigningSettings = Depends(get_settings),
        engine: CryptoEngine = Depends(get_engine),
    ) -> FormModelResponse:
        """Return the form options and open a draft session."""
        session_id = current_session_id(request, cfg) or SessionStore.new_session_id()
        coordinator.open_form(session_id)
        remember_session(response, cfg, session_id)
        return form_model(variant, cfg, engine)

    if variant.accepts_container_type:

        @router.post("", response_model=SigningProcessResponse)
        def submit_documents_configuration(
            request: Request,
            response: Response,
            signature_form: Optional[str] = Form(None, alias="signatureForm"),
            signature_level: Optional[str] = Form(None, alias="signatureLevel"),
            digest_algorithm: Optional[str] = Form(None, alias="digestAlgorithm"),
            container_type: Optional[str] = Form(None, alias="containerType"),
            add_content_timestamp: bool = Form(False, alias="addContentTimestamp"),
            documents_to_sign: Optional[list[UploadFile]] = File(None, alias="documentsToSign"),
            coordinator: SigningCoordinator = Depends(get_coordinator),
            cfg: RemoteSigningSettings = Depends(get_settings),
            engine: CryptoEngine = Depends(get_engine),
        ):
            """Configure signing of uploaded documents, optionally inside an ASiC container."""
            documents = [
                DocumentToSign(name=upload.filename or "", content=upload.file.read(), mime_type=upload.content_type)
                for upload in documents_to_sign or []
            ]
            form = ConfigurationForm(
                signature_form=signature_form,
                signature_level=signature_level,
                digest_algorithm=digest_algorithm,
                container_type=container_type,
                add_content_timestamp=add_content_timestamp,
                documents=documents,
            )
            return accept_configuration(request, response, form, coordinator, cfg, engine)

    else:

        @router.post("", response_model=SigningProcessResponse)
        def submit_digest_configuration(
            request: Request,
            response: Response,
            signature_form: Optional[str] = Form(None, alias="signatureForm"),
            signature_level: Optional[str] = Form(None, alias="signatureLevel"),
            digest_algorithm: Optional[str] = Form(None, alias="digestAlgorithm"),
            container_type: Optional[str] = Form(None, alias="containerType"),
            add_content_timestamp: bool = Form(False, alias="addContentTimestamp"),
            document_name: Optional[str] = Form(None, alias="documentName"),
            digest_to_sign: Optional[str] = Form(None, alias="digestToSign"),
            coordinator: SigningCoordinator = Depends(get_coordinator),
            cfg: RemoteSigningSettings = Depends(get_settings),
            engine: CryptoEngine = Depends(get_engine),
        ):
            """Configure signing of a digest computed by the browser."""
            form = ConfigurationForm(
                signature_form=signature_form,
                signature_level=signature_level,
                digest_algorithm=digest_algorithm,
                container_type=container_type,
                add_content_timestamp=add_content_timestamp,
                document_name=document_name,
                digest_to_sign=digest_to_sign,
            )
            return accept_configuration(request, response, form, coordinator, cfg, engine)

    @router.post("/get-data-to-sign", response_model=GetDataToSignResponse)
    def get_data_to_sign(
        params: DataToSignParams,
        request: Request,
        coordinator: SigningCoordinator = Depends(get_coordinator),
        cfg: RemoteSigningSettings = Depends(get_settings),
    ) -> GetDataToSignResponse:
        """Compute the data the signing agent has to sign."""
        session_id = current_session_id(request, cfg)
        if session_id is None:
            raise OutOfOrderRequest("get-data-to-sign", None)
        data_to_sign = coordinator.get_data_to_sign(
            session_id,
            signing_certificate=params.signing_certificate,
            certificate_chain=params.certificate_chain,
            encryption_algorithm=params.encryption_algorithm,
        )
        return GetDataToSignResponse(data_to_sign=base64.b64encode(data_to_sign).decode("ascii"))

    @router.post("/sign-document", response_model=SignDocumentResponse)
    def sign_document(
        payload: SignatureValueRequest,
        request: Request,
        coordinator: SigningCoordinator = Depends(get_coordinator),
        cfg: RemoteSigningSettings = Depends(get_settings),
    ) -> SignDocumentResponse:
        """Accept the signature value and assemble the signed document."""
        session_id = current_session_id(request, cfg)
        if session_id is None:
            raise OutOfOrderRequest("sign-document", None)
        coordinator.sign_document(session_id, payload.signature_value)
        return SignDocumentResponse(url_to_download=DOWNLOAD_PATH)

    @router.get(f"/{DOWNLOAD_PATH}", response_class=Response)
    def download(
        request: Request,
        gate: DownloadGate = Depends(get_download_gate),
        cfg: RemoteSigningSettings = Depends(get_settings),
    ) -> Response:
        """Stream the signed document as an attachment."""
        document = gate.fetch(current_session_id(request, cfg))
        return Response(content=document.content, media_type=media_type(document), headers=download_headers(document))

    return router


single_document_router = create_router(SINGLE_DOCUMENT)
multi_document_router = create_router(MULTI_DOCUMENT)
