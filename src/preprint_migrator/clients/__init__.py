"""Network clients for the OSF API."""

from .client import Client
from .exceptions import (
    APIError,
    ClientError,
    ConnectionError,
    ForbiddenError,
    GoneError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from .osf_client import DEFAULT_BASE_URL, OsfClient
from .pagination import PageIterator

__all__ = [
    "Client",
    "OsfClient",
    "PageIterator",
    "DEFAULT_BASE_URL",
    "ClientError",
    "ConnectionError",
    "APIError",
    "ForbiddenError",
    "GoneError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
]
