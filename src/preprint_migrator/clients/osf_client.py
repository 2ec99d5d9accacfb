"""OSF API client for fetching preprints and their related resources."""

from typing import TypeVar
from urllib.parse import quote

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from schemas.osf import Preprint

from .client import Client
from .exceptions import ValidationError
from .pagination import PageIterator

T = TypeVar("T", bound=BaseModel)

DEFAULT_BASE_URL = "https://api.osf.io/v2/"


class OsfClient(Client):
    """Client for the OSF API v2.

    Lists a provider's preprints and follows the relationship links of the
    resource graph. Relationship links are absolute URLs; httpx uses them
    as-is instead of joining them to ``base_url``.

    Config keys (in addition to the base Client keys):
        token: Personal access token sent as a bearer token

    Example:
        config = {"base_url": "https://api.osf.io/v2/", "token": "..."}
        with OsfClient(config) as client:
            for item in client.fetch("engrxiv"):
                ...
    """

    @property
    def headers(self) -> dict[str, str]:
        headers = dict(self._config.get("headers", {}))
        token = self._config.get("token")
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def fetch(self, provider: str) -> PageIterator:
        """List the preprints of a provider.

        The first page is fetched right away so that ``total`` is available
        before iteration starts. Items are yielded as raw dicts and
        validated one at a time by ``MigrationRunner.validate``.

        Args:
            provider: OSF provider id (e.g. "engrxiv")

        Returns:
            PageIterator yielding raw preprint items with the license embedded

        Raises:
            APIError: If the API returns a non-2xx response
            ConnectionError: If the network connection fails
        """
        path = f"preprints/?embed=license&filter[provider]={quote(provider)}"
        first_page = self.get_json(path)
        return PageIterator(self, first_page=first_page)

    def fetch_preprint(self, preprint_id: str) -> Preprint:
        """Fetch a single preprint by id, with its license embedded."""
        return self.get_resource(
            f"preprints/{quote(preprint_id)}/?embed=license", Preprint
        )

    def paginate(self, url: str, model: type[T]) -> PageIterator[T]:
        """Walk a related collection lazily, validating items as ``model``."""
        return PageIterator(self, url=url, model=model)

    def get_resource(self, url: str, model: type[T]) -> T:
        """Fetch a single-resource document and validate its ``data``.

        Raises:
            ValidationError: If the payload fails schema validation
        """
        payload = self.get_json(url)
        try:
            return model.model_validate(payload.get("data"))
        except PydanticValidationError as e:
            raise ValidationError(
                f"{model.__name__} at {url} failed validation",
                errors=[str(err) for err in e.errors()],
            ) from e
