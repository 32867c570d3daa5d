"""Remote signing service.

Coordinates the two-phase signing flow where the private key never leaves the
caller: the service prepares the data to be signed, an external signing agent
produces the signature value, and the service assembles the signed artifact.
"""

from remote_signing.enums import ASiCContainerType, DigestAlgorithm, EncryptionAlgorithm, SignatureForm, SignatureLevel
from remote_signing.models import MULTI_DOCUMENT, SINGLE_DOCUMENT, SessionState, SignedDocument, SigningSession

__all__ = [
    "MULTI_DOCUMENT",
    "SINGLE_DOCUMENT",
    "ASiCContainerType",
    "DigestAlgorithm",
    "EncryptionAlgorithm",
    "SessionState",
    "SignatureForm",
    "SignatureLevel",
    "SignedDocument",
    "SigningSession",
]
