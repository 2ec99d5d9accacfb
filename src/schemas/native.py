"""Vocabularies of the PKP Native Import/Export format and the OPS database.

These values appear verbatim in the generated XML and SQL.
"""

from enum import Enum, IntEnum


class Advice(str, Enum):
    """Values of the ``<id advice="...">`` attribute.

    ``ignore`` keeps whatever the platform already holds for the identifier,
    ``update`` lets the import overwrite it.
    """

    IGNORE = "ignore"
    UPDATE = "update"


class IdentifierType(str, Enum):
    """Values of the ``<id type="...">`` attribute."""

    PUBLIC = "public"
    INTERNAL = "internal"
    DOI = "doi"

    @property
    def advice(self) -> Advice:
        if self is IdentifierType.INTERNAL:
            return Advice.IGNORE
        return Advice.UPDATE


class ReviewState(str, Enum):
    """OSF preprint review states the migrator understands."""

    INITIAL = "initial"
    ACCEPTED = "accepted"
    WITHDRAWN = "withdrawn"


class PublicationStatus(IntEnum):
    """OPS submission/publication status codes."""

    QUEUED = 1
    PUBLISHED = 3
    DECLINED = 4
    SCHEDULED = 5


class MetricsFileType(IntEnum):
    """``metrics.file_type`` codes used when importing download counts."""

    HTML = 1
    PDF = 2
    OTHER = 3
    DOC = 4


class DefaultValues:
    """Fixed values used when importing preprints."""

    STAGE = "proof"
    GENRE = "Preprint Text"
    GENRE_ABBREVIATION = "PRE"
    OTHER_GENRE = "Other"
    OTHER_GENRE_ABBREVIATION = "OTHER"
    USER_GROUP = "Author"
    PUBLICATION_RELATION = 3
    AUTHOR_ROLE_ID = 0x00010000
    SUBMISSION_FILE_ASSOC_TYPE = 0x00000203
