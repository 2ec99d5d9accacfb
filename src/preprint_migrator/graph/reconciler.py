"""Version reconciliation.

OSF keeps a single preprint record plus a revision history per file, while
OPS wants one publication per version. The number of versions is the longest
file history; for each version every file contributes the revision at that
index, or its latest revision once its own history is shorter
("carry-forward").

Every id that ends up in the document is derived from a closed formula so
that repeated imports of unchanged data produce identical output:

- submission file local ids: 1..F over the flattened revision list
- author ids: ``(version - 1) * author_count + seq``
- galley ids: ``(version - 1) * galley_count + seq``
"""

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import cached_property
from itertools import accumulate

from schemas.native import PublicationStatus, ReviewState

from ..exceptions import ContractViolationError
from .fetcher import FileRevision, ResourceGraph, StoredFile

logger = logging.getLogger(__name__)

STATUS_BY_REVIEW_STATE = {
    ReviewState.INITIAL: PublicationStatus.QUEUED,
    ReviewState.ACCEPTED: PublicationStatus.PUBLISHED,
    ReviewState.WITHDRAWN: PublicationStatus.DECLINED,
}


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an OSF timestamp; naive values are taken as UTC.

    Raises:
        ContractViolationError: If the value is neither a timestamp nor a date
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value[:10])
        except ValueError:
            raise ContractViolationError(f"Unparseable timestamp {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_date(value: str | None) -> date | None:
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def version_count(files: Sequence[StoredFile]) -> int:
    """Number of publication versions: the longest revision history, at least 1."""
    return max([1, *(len(stored.revisions) for stored in files)])


def select_revision(revisions: Sequence[FileRevision], version: int) -> FileRevision:
    """Revision used by a 1-based version, carrying the latest one forward."""
    if version <= len(revisions):
        return revisions[version - 1]
    return revisions[-1]


def author_position(version: int, author_count: int, seq: int) -> int:
    """Document id of the ``seq``-th (1-based) author of a version."""
    return (version - 1) * author_count + seq


def galley_position(version: int, galley_count: int, seq: int) -> int:
    """Document id of the ``seq``-th (1-based) galley of a version."""
    return (version - 1) * galley_count + seq


def map_review_state(
    state: str | None, preprint_id: str | None = None
) -> PublicationStatus:
    """Map an OSF review state to the OPS submission status.

    Raises:
        ContractViolationError: For an unknown or missing state
    """
    try:
        return STATUS_BY_REVIEW_STATE[ReviewState(state)]
    except ValueError:
        raise ContractViolationError(
            f"Unknown review state {state!r}", preprint_id=preprint_id
        ) from None


def publication_status(status: PublicationStatus) -> PublicationStatus:
    """Status written on publications: declined preprints stay in the queue."""
    if status is PublicationStatus.DECLINED:
        return PublicationStatus.QUEUED
    return status


def candidate_publish_date(files: Sequence[StoredFile], version: int) -> date | None:
    """Latest upload date among the revisions made for this exact version.

    Files whose history is shorter than ``version`` do not take part.
    """
    dates = [
        parsed
        for stored in files
        if len(stored.revisions) >= version
        if (parsed := parse_datetime(stored.revisions[version - 1].date_created))
    ]
    return max(dates).date() if dates else None


def resolve_publish_date(
    version: int,
    total_versions: int,
    preprint_published: date | None,
    candidate: date | None,
) -> date | None:
    """Pick the publish date of a version.

    Only the final version can rely on the preprint-level published date;
    earlier ones are dated from their file history.
    """
    if version == total_versions:
        return preprint_published or candidate
    return candidate or preprint_published


@dataclass(frozen=True)
class NumberedRevision:
    """A revision together with its submission file id in the document."""

    local_id: int
    revision: FileRevision
    stored_file: StoredFile


@dataclass(frozen=True)
class ReconciledVersion:
    """Everything version-specific the document builder needs."""

    number: int
    is_final: bool
    date_published: date | None
    submission_files: tuple[NumberedRevision, ...]
    supplementary_files: tuple[NumberedRevision, ...]


class VersionReconciler:
    """Derive per-version selections from a preprint's resource graph.

    Example:
        reconciler = VersionReconciler(graph)
        for version in reconciler.versions():
            ...
    """

    def __init__(self, graph: ResourceGraph):
        self.graph = graph
        self.preprint = graph.preprint

    @cached_property
    def files(self) -> list[StoredFile]:
        return self.graph.all_files

    @cached_property
    def _offsets(self) -> list[int]:
        """Local id offset of each file: revisions of all previous files."""
        return [0, *accumulate(len(stored.revisions) for stored in self.files)]

    @property
    def version_count(self) -> int:
        return version_count(self.files)

    @cached_property
    def status(self) -> PublicationStatus:
        return map_review_state(self.preprint.attributes.reviews_state, self.preprint.id)

    @property
    def publication_status(self) -> PublicationStatus:
        return publication_status(self.status)

    def local_id(self, file_index: int, revision_index: int) -> int:
        return self._offsets[file_index] + revision_index + 1

    def numbered_files(self) -> list[NumberedRevision]:
        """Every retained revision in document order, numbered 1..F."""
        return [
            NumberedRevision(self.local_id(file_index, revision_index), revision, stored)
            for file_index, stored in enumerate(self.files)
            for revision_index, revision in enumerate(stored.revisions)
        ]

    def revision_for(self, local_id: int) -> NumberedRevision:
        """Look up a numbered revision by its submission file id."""
        for file_index, stored in enumerate(self.files):
            revision_index = local_id - self._offsets[file_index] - 1
            if 0 <= revision_index < len(stored.revisions):
                return NumberedRevision(local_id, stored.revisions[revision_index], stored)
        raise KeyError(local_id)

    def select(self, version: int) -> list[NumberedRevision]:
        """The revision of every file used by a version, in file order."""
        selected = []
        for file_index, stored in enumerate(self.files):
            revision_index = min(version, len(stored.revisions)) - 1
            selected.append(
                NumberedRevision(
                    self.local_id(file_index, revision_index),
                    select_revision(stored.revisions, version),
                    stored,
                )
            )
        return selected

    def versions(self) -> Iterator[ReconciledVersion]:
        """Yield versions 1..N with their file selections and publish dates."""
        total = self.version_count
        preprint_published = to_date(self.preprint.attributes.date_published)
        for number in range(1, total + 1):
            selected = self.select(number)
            candidate = candidate_publish_date(self.files, number)
            yield ReconciledVersion(
                number=number,
                is_final=number == total,
                date_published=resolve_publish_date(
                    number, total, preprint_published, candidate
                ),
                submission_files=tuple(
                    entry for entry in selected if not entry.stored_file.supplementary
                ),
                supplementary_files=tuple(
                    entry for entry in selected if entry.stored_file.supplementary
                ),
            )
