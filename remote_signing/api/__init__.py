"""HTTP surface of the remote signing service."""

from .router import create_router, multi_document_router, single_document_router

__all__ = ["create_router", "multi_document_router", "single_document_router"]
