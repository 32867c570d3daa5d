"""Validation of configuration form submissions."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field

from remote_signing.core.exceptions import InvalidConfiguration
from remote_signing.enums import (
    ASiCContainerType,
    DigestAlgorithm,
    EnumParseError,
    SignatureForm,
    SignatureLevel,
    parse_container_type,
    parse_digest_algorithm,
    parse_signature_form,
    parse_signature_level,
)
from remote_signing.models import SIGNATURE_FORMS, DocumentToSign, SigningConfiguration, SigningVariant


@dataclass(slots=True)
class ConfigurationForm:
    """Raw configuration fields as submitted by the browser."""

    signature_form: str | None = None
    signature_level: str | None = None
    digest_algorithm: str | None = None
    container_type: str | None = None
    add_content_timestamp: bool = False
    document_name: str | None = None
    digest_to_sign: str | None = None
    documents: list[DocumentToSign] = field(default_factory=list)


def parse_configuration(variant: SigningVariant, form: ConfigurationForm) -> SigningConfiguration:
    """Turn a raw form into a :class:`SigningConfiguration` for ``variant``.

    Every problem is collected before raising so the caller can show them all.

    Raises:
        InvalidConfiguration: if any field is missing, unknown or not allowed for the variant.
    """
    errors: list[str] = []

    signature_form: SignatureForm | None = None
    try:
        signature_form = parse_signature_form(form.signature_form)
        if signature_form not in SIGNATURE_FORMS:
            errors.append(f"signatureForm: {signature_form.value} is not supported, expected CAdES or XAdES")
    except EnumParseError as exc:
        errors.append(str(exc))

    signature_level: SignatureLevel | None = None
    try:
        signature_level = parse_signature_level(form.signature_level)
    except EnumParseError as exc:
        errors.append(str(exc))

    digest_algorithm: DigestAlgorithm | None = None
    try:
        digest_algorithm = parse_digest_algorithm(form.digest_algorithm)
        if digest_algorithm not in variant.digest_algorithms:
            allowed = ", ".join(algo.value for algo in variant.digest_algorithms)
            errors.append(f"digestAlgorithm: {digest_algorithm.value} is not allowed here, expected one of {allowed}")
            digest_algorithm = None
    except EnumParseError as exc:
        errors.append(str(exc))

    container_type: ASiCContainerType | None = None
    if form.container_type:
        if not variant.accepts_container_type:
            errors.append("containerType: not accepted when signing a single digest")
        else:
            try:
                container_type = parse_container_type(form.container_type)
            except EnumParseError as exc:
                errors.append(str(exc))

    if variant.accepts_container_type:
        documents = _uploaded_documents(form, errors)
    else:
        documents = _digest_document(form, digest_algorithm, errors)

    if errors:
        raise InvalidConfiguration(errors)

    return SigningConfiguration(
        signature_form=signature_form,
        signature_level=signature_level,
        digest_algorithm=digest_algorithm,
        documents=documents,
        container_type=container_type,
        add_content_timestamp=form.add_content_timestamp,
    )


def has_control_characters(value: str) -> bool:
    return any(ord(char) < 0x20 or ord(char) == 0x7F for char in value)


def _digest_document(
    form: ConfigurationForm, digest_algorithm: DigestAlgorithm | None, errors: list[str]
) -> tuple[DocumentToSign, ...]:
    if not form.document_name:
        errors.append("documentName: a document name is required")
    elif has_control_characters(form.document_name):
        errors.append("documentName: control characters are not allowed")
    if not form.digest_to_sign:
        errors.append("digestToSign: a base64 encoded digest is required")
        return ()
    try:
        digest = base64.b64decode(form.digest_to_sign, validate=True)
    except (binascii.Error, ValueError):
        errors.append("digestToSign: not valid base64")
        return ()
    if digest_algorithm is not None and len(digest) != digest_algorithm.digest_size:
        errors.append(
            f"digestToSign: {len(digest)} bytes does not match {digest_algorithm.value} "
            f"({digest_algorithm.digest_size} bytes)"
        )
    if not form.document_name:
        return ()
    return (DocumentToSign(name=form.document_name, digest=digest),)


def _uploaded_documents(form: ConfigurationForm, errors: list[str]) -> tuple[DocumentToSign, ...]:
    if not form.documents:
        errors.append("documentsToSign: at least one document is required")
        return ()
    for index, document in enumerate(form.documents):
        if not document.name:
            errors.append(f"documentsToSign[{index}]: a file name is required")
        elif has_control_characters(document.name):
            errors.append(f"documentsToSign[{index}]: control characters are not allowed in the file name")
    return tuple(form.documents)
