"""Schema definitions for preprint-migrator."""

from .native import (
    Advice,
    DefaultValues,
    IdentifierType,
    MetricsFileType,
    PublicationStatus,
    ReviewState,
)
from .osf import (
    Contributor,
    FileVersion,
    Folder,
    Institution,
    License,
    Node,
    OsfFile,
    Page,
    Preprint,
    Subject,
    User,
)
from .settings import ImportSettings

__all__ = [
    "Advice",
    "Contributor",
    "DefaultValues",
    "FileVersion",
    "Folder",
    "IdentifierType",
    "ImportSettings",
    "Institution",
    "License",
    "MetricsFileType",
    "Node",
    "OsfFile",
    "Page",
    "Preprint",
    "PublicationStatus",
    "ReviewState",
    "Subject",
    "User",
]
