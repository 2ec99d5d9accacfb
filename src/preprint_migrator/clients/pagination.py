"""Cursor over the pages of an OSF API collection."""

import logging
from collections.abc import Iterator
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from schemas.osf import Page

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class PageIterator(Generic[T]):
    """Lazy, single-pass walk over a paginated collection.

    Follows ``links.next`` until it is null. Nothing is fetched until the
    first item is requested; every page costs exactly one GET and failures
    propagate untouched. Once exhausted the iterator stays exhausted: start
    a new one from the original URL to walk the collection again.

    Example:
        pages = PageIterator(client, url=folder_url, model=OsfFile)
        for osf_file in pages:
            ...
    """

    def __init__(
        self,
        client,
        url: str | None = None,
        first_page: Page | dict[str, Any] | None = None,
        model: type[T] | None = None,
    ):
        """Initialize the iterator.

        Args:
            client: Client exposing ``get_json(url)``
            url: URL of the first page, fetched lazily
            first_page: Already-decoded first page (e.g. to read its total)
            model: Pydantic model used to validate each item

        Raises:
            ValueError: Unless exactly one of url and first_page is given
        """
        if (url is None) == (first_page is None):
            raise ValueError("exactly one of url or first_page is required")

        self._client = client
        self._model = model
        self._next_url = url
        self._page: Page | None = None
        if first_page is not None:
            self._page = (
                first_page
                if isinstance(first_page, Page)
                else Page.model_validate(first_page)
            )
            self._next_url = None
        self._total: int | None = self._page.total if self._page else None

    @property
    def total(self) -> int | None:
        """Collection size reported by the first page, if known yet."""
        return self._total

    def has_more(self) -> bool:
        """Return True while a page is buffered or a next link remains."""
        return self._page is not None or self._next_url is not None

    def next_batch(self) -> list[T] | list[dict[str, Any]]:
        """Return the items of the next page, fetching it if needed.

        Returns:
            Items of one page (validated when a model was given); an empty
            list once the collection is exhausted
        """
        if self._page is None:
            if self._next_url is None:
                return []
            self._page = self._fetch(self._next_url)

        page, self._page = self._page, None
        self._next_url = page.links.next or None
        return self._validate_items(page.data)

    def __iter__(self) -> Iterator[T]:
        while self.has_more():
            yield from self.next_batch()

    def _fetch(self, url: str) -> Page:
        logger.debug(f"Fetching page {url}")
        page = Page.model_validate(self._client.get_json(url))
        if self._total is None:
            self._total = page.total
        return page

    def _validate_items(self, items: list[dict[str, Any]]) -> list:
        """Validate raw page items against the iterator's model.

        Raises:
            ValidationError: If any item fails validation
        """
        if self._model is None:
            return list(items)

        validated = []
        for i, item in enumerate(items):
            try:
                validated.append(self._model.model_validate(item))
            except PydanticValidationError as e:
                item_id = item.get("id", f"index {i}")
                raise ValidationError(
                    f"{self._model.__name__} {item_id} failed validation",
                    errors=[str(err) for err in e.errors()],
                ) from e
        return validated
