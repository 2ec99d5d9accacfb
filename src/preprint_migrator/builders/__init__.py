"""Builders for the PKP native import document."""

from .document_builder import PKP_NS, DocumentBuilder

__all__ = [
    "DocumentBuilder",
    "PKP_NS",
]
