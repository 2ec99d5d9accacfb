"""OSF API v2 resource schemas.

The OSF API follows JSON:API: every resource carries an ``id``, a bag of
``attributes``, ``relationships`` whose ``links.related.href`` points at
another (usually paginated) collection, and optional ``embeds`` requested
with ``?embed=``. Collections are delivered as pages with a ``links.next``
cursor.

Only the fields the migrator reads are declared; everything else is kept
through ``extra="allow"``. Fields the API sends as ``null`` are normalized
to empty values where the migrator treats "absent" and "empty" alike.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


def _none_to_str(value: Any) -> Any:
    return "" if value is None else value


def _none_to_int(value: Any) -> Any:
    return 0 if value is None else value


StrList = Annotated[list[str], BeforeValidator(_none_to_list)]
Text = Annotated[str, BeforeValidator(_none_to_str)]
Count = Annotated[int, BeforeValidator(_none_to_int)]


class Link(BaseModel):
    """A JSON:API link object."""

    href: str | None = None
    meta: dict[str, Any] | None = None


class RelationshipLinks(BaseModel):
    related: Link | None = None


class Relationship(BaseModel):
    """A JSON:API relationship; only the related link is used."""

    links: RelationshipLinks | None = None

    @property
    def href(self) -> str | None:
        if self.links is None or self.links.related is None:
            return None
        return self.links.related.href


class Resource(BaseModel):
    """Common shape of every OSF resource item."""

    id: str
    type: str | None = None
    relationships: dict[str, Relationship | None] = {}

    model_config = {"extra": "allow"}

    def related_href(self, name: str) -> str | None:
        """Return the related-collection URL of a relationship, if any."""
        relationship = self.relationships.get(name)
        if relationship is None:
            return None
        return relationship.href


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


class PageLinks(BaseModel):
    next: str | None = None
    meta: dict[str, Any] | None = None

    model_config = {"extra": "allow"}


class Page(BaseModel):
    """One page of a paginated collection."""

    data: list[dict[str, Any]] = []
    links: PageLinks = Field(default_factory=PageLinks)
    meta: dict[str, Any] | None = None

    model_config = {"extra": "allow"}

    @property
    def total(self) -> int | None:
        """Total item count, from ``meta`` or the legacy ``links.meta``."""
        for meta in (self.meta, self.links.meta):
            if meta and meta.get("total") is not None:
                return int(meta["total"])
        return None


# ---------------------------------------------------------------------------
# Preprint
# ---------------------------------------------------------------------------


class LicenseRecord(BaseModel):
    copyright_holders: StrList = []
    year: str | None = None


class InlineSubject(BaseModel):
    id: str | None = None
    text: str


class PreprintAttributes(BaseModel):
    title: Text = ""
    description: Text = ""
    tags: StrList = []
    subjects: list[list[InlineSubject]] | None = None
    date_created: str
    date_published: str | None = None
    date_modified: str | None = None
    license_record: LicenseRecord | None = None
    reviews_state: str | None = None
    doi: str | None = None
    data_links: StrList = []
    prereg_links: StrList = []

    model_config = {"extra": "allow"}


class PreprintLinks(BaseModel):
    preprint_doi: str | None = None
    html: str | None = None

    model_config = {"extra": "allow"}


class LicenseAttributes(BaseModel):
    name: str | None = None
    text: Text = ""
    url: str | None = None


class License(BaseModel):
    id: str | None = None
    attributes: LicenseAttributes = Field(default_factory=LicenseAttributes)


class EmbeddedLicense(BaseModel):
    data: License | None = None


class PreprintEmbeds(BaseModel):
    license: EmbeddedLicense | None = None

    model_config = {"extra": "allow"}


class Preprint(Resource):
    """A preprint, the top-level record being migrated."""

    attributes: PreprintAttributes
    links: PreprintLinks = Field(default_factory=PreprintLinks)
    embeds: PreprintEmbeds = Field(default_factory=PreprintEmbeds)

    @property
    def license(self) -> License | None:
        if self.embeds.license is None:
            return None
        return self.embeds.license.data


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class Folder(Resource):
    """A storage provider or folder listed under a preprint or node."""

    attributes: dict[str, Any] = {}


class FileExtra(BaseModel):
    downloads: Count = 0

    model_config = {"extra": "allow"}


class FileAttributes(BaseModel):
    name: str
    kind: str | None = None
    size: Count = 0
    date_created: str | None = None
    date_modified: str | None = None
    extra: FileExtra = Field(default_factory=FileExtra)

    model_config = {"extra": "allow"}


class FileLinks(BaseModel):
    download: str | None = None

    model_config = {"extra": "allow"}


class OsfFile(Resource):
    """A stored file; its revisions live behind the ``versions`` relationship."""

    attributes: FileAttributes
    links: FileLinks = Field(default_factory=FileLinks)


class FileVersionAttributes(BaseModel):
    name: str | None = None
    size: Count = 0
    content_type: str | None = None
    date_created: str | None = None

    model_config = {"extra": "allow"}


class FileVersion(Resource):
    """One revision of a stored file."""

    attributes: FileVersionAttributes = Field(default_factory=FileVersionAttributes)
    links: FileLinks = Field(default_factory=FileLinks)


# ---------------------------------------------------------------------------
# Contributors
# ---------------------------------------------------------------------------


class PersonName(BaseModel):
    """Name fields shared by user attributes and lookup-error payloads."""

    given_name: Text = ""
    middle_names: Text = ""
    family_name: Text = ""
    full_name: Text = ""

    model_config = {"extra": "allow"}


class UserAttributes(PersonName):
    social: dict[str, Any] | None = None


class User(Resource):
    attributes: UserAttributes = Field(default_factory=UserAttributes)


class EmbedError(BaseModel):
    detail: str | None = None
    meta: PersonName | None = None

    model_config = {"extra": "allow"}


class EmbeddedUser(BaseModel):
    data: User | None = None
    errors: list[EmbedError] = []


class ContributorAttributes(BaseModel):
    index: Count = 0
    bibliographic: bool = True

    model_config = {"extra": "allow"}


class ContributorEmbeds(BaseModel):
    users: EmbeddedUser | None = None

    model_config = {"extra": "allow"}


class Contributor(Resource):
    """A bibliographic contributor of a preprint.

    When the user lookup failed upstream, ``embeds.users`` holds an error
    whose ``meta`` still carries the contributor's names.
    """

    attributes: ContributorAttributes = Field(default_factory=ContributorAttributes)
    embeds: ContributorEmbeds = Field(default_factory=ContributorEmbeds)

    @property
    def user(self) -> User | None:
        if self.embeds.users is None:
            return None
        return self.embeds.users.data

    @property
    def fallback_name(self) -> PersonName | None:
        if self.embeds.users is None:
            return None
        for error in self.embeds.users.errors:
            if error.meta is not None:
                return error.meta
        return None


class InstitutionAttributes(BaseModel):
    name: Text = ""

    model_config = {"extra": "allow"}


class Institution(Resource):
    attributes: InstitutionAttributes = Field(default_factory=InstitutionAttributes)


# ---------------------------------------------------------------------------
# Subjects and nodes
# ---------------------------------------------------------------------------


class SubjectAttributes(BaseModel):
    text: str

    model_config = {"extra": "allow"}


class Subject(Resource):
    attributes: SubjectAttributes


class NodeLinks(BaseModel):
    html: str | None = None

    model_config = {"extra": "allow"}


class Node(Resource):
    """The OSF project a preprint links to for supplementary material."""

    attributes: dict[str, Any] = {}
    links: NodeLinks = Field(default_factory=NodeLinks)
