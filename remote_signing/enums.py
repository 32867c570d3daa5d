"""Signature parameter enumerations and their explicit parsers.

Values arrive from form fields and JSON bodies as raw strings. Each parser
accepts either the display value (``CAdES-BASELINE-B``) or the wire name used
by DSS-compatible services (``CAdES_BASELINE_B``), exactly as written, and
raises :class:`EnumParseError` for anything else.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import TypeVar


class EnumParseError(ValueError):
    """A raw value that is not a member of the expected enumeration."""

    def __init__(self, field: str, value: object, allowed: list[str]):
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(f"{field}: {value!r} is not one of {', '.join(allowed)}")


class _WireEnum(str, Enum):
    @property
    def wire_name(self) -> str:
        return self.value.replace("-", "_")


class SignatureForm(_WireEnum):
    CADES = "CAdES"
    XADES = "XAdES"
    PADES = "PAdES"
    JADES = "JAdES"


class SignatureLevel(_WireEnum):
    CADES_BASELINE_B = "CAdES-BASELINE-B"
    CADES_BASELINE_T = "CAdES-BASELINE-T"
    CADES_BASELINE_LT = "CAdES-BASELINE-LT"
    CADES_BASELINE_LTA = "CAdES-BASELINE-LTA"
    XADES_BASELINE_B = "XAdES-BASELINE-B"
    XADES_BASELINE_T = "XAdES-BASELINE-T"
    XADES_BASELINE_LT = "XAdES-BASELINE-LT"
    XADES_BASELINE_LTA = "XAdES-BASELINE-LTA"


class DigestAlgorithm(_WireEnum):
    SHA1 = "SHA1"
    SHA224 = "SHA224"
    SHA256 = "SHA256"
    SHA384 = "SHA384"
    SHA512 = "SHA512"

    @property
    def hash_name(self) -> str:
        return self.value.lower()

    @property
    def digest_size(self) -> int:
        return hashlib.new(self.hash_name).digest_size

    def digest(self, data: bytes) -> bytes:
        return hashlib.new(self.hash_name, data).digest()


class EncryptionAlgorithm(_WireEnum):
    RSA = "RSA"
    DSA = "DSA"
    ECDSA = "ECDSA"
    PLAIN_ECDSA = "PLAIN-ECDSA"
    EDDSA = "EDDSA"


class ASiCContainerType(_WireEnum):
    ASIC_S = "ASiC-S"
    ASIC_E = "ASiC-E"

    @property
    def mime_type(self) -> str:
        return "application/vnd.etsi.asic-s+zip" if self is ASiCContainerType.ASIC_S else "application/vnd.etsi.asic-e+zip"

    @property
    def extension(self) -> str:
        return "asics" if self is ASiCContainerType.ASIC_S else "asice"


E = TypeVar("E", bound=_WireEnum)


def _parse(enum_cls: type[E], field: str, raw: object) -> E:
    if isinstance(raw, enum_cls):
        return raw
    if isinstance(raw, str):
        for member in enum_cls:
            if raw in (member.value, member.wire_name):
                return member
    raise EnumParseError(field, raw, [member.value for member in enum_cls])


def parse_signature_form(raw: object) -> SignatureForm:
    return _parse(SignatureForm, "signatureForm", raw)


def parse_signature_level(raw: object) -> SignatureLevel:
    return _parse(SignatureLevel, "signatureLevel", raw)


def parse_digest_algorithm(raw: object) -> DigestAlgorithm:
    return _parse(DigestAlgorithm, "digestAlgorithm", raw)


def parse_encryption_algorithm(raw: object) -> EncryptionAlgorithm:
    return _parse(EncryptionAlgorithm, "encryptionAlgorithm", raw)


def parse_container_type(raw: object) -> ASiCContainerType:
    return _parse(ASiCContainerType, "containerType", raw)
