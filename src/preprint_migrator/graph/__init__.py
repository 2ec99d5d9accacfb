"""Resource graph traversal and version reconciliation."""

from .fetcher import Author, FileRevision, ResourceGraph, StoredFile
from .reconciler import NumberedRevision, ReconciledVersion, VersionReconciler

__all__ = [
    "Author",
    "FileRevision",
    "NumberedRevision",
    "ReconciledVersion",
    "ResourceGraph",
    "StoredFile",
    "VersionReconciler",
]
