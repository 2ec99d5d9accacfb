"""Document builder for PKP native import XML.

Turns a preprint's resource graph and its reconciled versions into one
``<preprint>`` document for the OPS Native Import/Export plugin: a
``submission_file`` per retained file revision followed by one
``publication`` per version, each with its identifiers, metadata, authors
and galleys.
"""

import base64
import logging
import re
from datetime import date
from typing import NamedTuple

from lxml import etree

from schemas.native import DefaultValues, IdentifierType
from schemas.osf import Preprint
from schemas.settings import ImportSettings

from ..clients.osf_client import OsfClient
from ..exceptions import ContractViolationError
from ..graph.fetcher import Author, ResourceGraph
from ..graph.reconciler import (
    NumberedRevision,
    ReconciledVersion,
    VersionReconciler,
    author_position,
    galley_position,
    to_date,
)

logger = logging.getLogger(__name__)

PKP_NS = "http://pkp.sfu.ca"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
SCHEMA_LOCATION = f"{PKP_NS} native.xsd"
DOI_PREFIX = "https://doi.org/"
ORCID_PREFIX = "https://orcid.org/"
INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
SUPPLEMENTARY_LABEL = "Supplementary Material"
DATA_LABEL = "Data"
PREREGISTRATION_LABEL = "Preregistration"


def _tag(local: str) -> str:
    return f"{{{PKP_NS}}}{local}"


def split_list(values: list[str]) -> list[str]:
    """Split semicolon-separated entries, trimming and dropping empty ones."""
    return [
        value.strip()
        for item in values
        for value in item.split(";")
        if value.strip()
    ]


def extract_year(value: str | None) -> str | None:
    """First four-digit run of a free-text year (e.g. "circa 2019")."""
    match = re.search(r"\d{4}", value or "")
    return match.group(0) if match else None


def format_date(value: date | None) -> str | None:
    return value.isoformat() if value else None


class Galley(NamedTuple):
    """A deliverable of a publication: a local file or a remote link."""

    label: str
    file_id: int | None = None
    remote: str | None = None


class DocumentBuilder:
    """Build the PKP native XML document of a preprint.

    The builder is stateless between calls; all per-preprint data comes from
    the resource graph and the reconciler. File content is downloaded through
    the client, either embedded as base64 or written next to the XML.

    Example:
        graph = ResourceGraph(preprint, client)
        root = DocumentBuilder(settings, client).build(graph, VersionReconciler(graph))
        xml_bytes = DocumentBuilder.serialize(root)
    """

    def __init__(self, settings: ImportSettings, client: OsfClient):
        self.settings = settings
        self.client = client

    @staticmethod
    def serialize(root: etree._Element) -> bytes:
        return etree.tostring(
            root,
            xml_declaration=True,
            encoding="UTF-8",
            pretty_print=True,
        )

    def build(
        self, graph: ResourceGraph, reconciler: VersionReconciler
    ) -> etree._Element:
        """Build the complete document of a preprint.

        Args:
            graph: Resource graph of the preprint
            reconciler: Version reconciler over the same graph

        Returns:
            Root ``<preprint>`` element

        Raises:
            ContractViolationError: If required upstream data is missing
            ClientError: If a fetch or download fails
        """
        preprint = graph.preprint
        root = self._build_root(preprint, reconciler)
        self._build_submission_files(root, preprint, reconciler)
        for version in reconciler.versions():
            self._build_publication(root, graph, reconciler, version)
        self._ensure_uploader(root)
        logger.debug(
            f"Built document for preprint {preprint.id} with "
            f"{reconciler.version_count} version(s)"
        )
        return root

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _build_root(
        self, preprint: Preprint, reconciler: VersionReconciler
    ) -> etree._Element:
        nsmap = {None: PKP_NS, "xsi": XSI_NS}
        root = etree.Element(_tag("preprint"), nsmap=nsmap)
        root.set(f"{{{XSI_NS}}}schemaLocation", SCHEMA_LOCATION)
        root.set("date_submitted", format_date(to_date(preprint.attributes.date_created)))
        root.set("status", str(int(reconciler.status)))
        root.set("submission_progress", "0")
        root.set("current_publication_id", str(reconciler.version_count))
        root.set("stage", "production")

        self._add_identifier(root, IdentifierType.INTERNAL, 1)
        if self.settings.include_public_id:
            self._add_identifier(root, IdentifierType.PUBLIC, preprint.id)
        return root

    def _build_submission_files(
        self, root: etree._Element, preprint: Preprint, reconciler: VersionReconciler
    ) -> None:
        entries = reconciler.numbered_files()
        if not entries:
            logger.info(f"Preprint {preprint.id} has no submission file")

        for entry in entries:
            revision = entry.revision
            node = self._add_namespaced(root, "submission_file")
            node.set("id", str(entry.local_id))
            node.set("date_created", format_date(to_date(revision.date_created)) or "")
            node.set("file_id", str(entry.local_id))
            node.set("stage", DefaultValues.STAGE)
            node.set("viewable", "false")
            node.set(
                "genre",
                DefaultValues.OTHER_GENRE
                if entry.stored_file.supplementary
                else DefaultValues.GENRE,
            )
            node.set("uploader", self.settings.user or "")
            node.set("language", self.settings.locale)
            self._add_localized(node, "name", revision.name)

            file_node = etree.SubElement(node, _tag("file"))
            file_node.set("id", str(entry.local_id))
            file_node.set("filesize", str(revision.size))
            file_node.set("extension", revision.extension)
            self._attach_content(file_node, preprint, entry)

    def _attach_content(
        self, file_node: etree._Element, preprint: Preprint, entry: NumberedRevision
    ) -> None:
        """Embed the revision content or reference a local copy of it."""
        url = entry.revision.download_url
        if not url:
            raise ContractViolationError(
                f"File {entry.stored_file.name!r} has no download link",
                preprint_id=preprint.id,
            )

        if self.settings.embed_submissions:
            embed = etree.SubElement(file_node, _tag("embed"))
            embed.set("encoding", "base64")
            embed.text = base64.b64encode(self.client.download_bytes(url)).decode("ascii")
            return

        extension = entry.revision.extension
        filename = f"{entry.local_id}.{extension}" if extension else str(entry.local_id)
        destination = self.settings.submission_dir_for(preprint.id) / filename
        if not destination.exists():
            destination.parent.mkdir(parents=True, exist_ok=True)
            size = self.client.download(url, destination)
            logger.debug(f"Downloaded {entry.revision.name!r} ({size} bytes) to {destination}")
        href = etree.SubElement(file_node, _tag("href"))
        href.set("src", filename)

    # ------------------------------------------------------------------
    # Publications
    # ------------------------------------------------------------------

    def _build_publication(
        self,
        root: etree._Element,
        graph: ResourceGraph,
        reconciler: VersionReconciler,
        version: ReconciledVersion,
    ) -> etree._Element:
        preprint = graph.preprint
        attributes = preprint.attributes
        authors = graph.authors

        node = self._add_namespaced(root, "publication")
        node.set("locale", self.settings.locale)
        node.set("version", str(version.number))
        node.set("status", str(int(reconciler.publication_status)))
        node.set("url_path", "")
        node.set("seq", "0")
        node.set("access_status", "0")
        node.set("section_ref", DefaultValues.GENRE_ABBREVIATION)
        if version.date_published is not None:
            node.set("date_published", format_date(version.date_published))
        if authors:
            node.set(
                "primary_contact_id",
                str(author_position(version.number, len(authors), 1)),
            )

        self._add_identifier(node, IdentifierType.INTERNAL, version.number)
        if self.settings.include_public_id:
            self._add_identifier(node, IdentifierType.PUBLIC, preprint.id)
        if preprint.links.preprint_doi:
            self._add_identifier(node, IdentifierType.DOI, preprint.links.preprint_doi)

        self._add_localized(node, "title", attributes.title)
        self._add_localized(node, "abstract", attributes.description)
        self._add_license(node, preprint)

        keywords = split_list(attributes.tags)
        if keywords:
            keywords_node = self._add_localized(node, "keywords")
            for keyword in keywords:
                etree.SubElement(keywords_node, _tag("keyword")).text = keyword

        if graph.subjects:
            disciplines_node = self._add_localized(node, "disciplines")
            for subject in graph.subjects:
                etree.SubElement(disciplines_node, _tag("discipline")).text = subject

        if authors:
            self._build_authors(node, preprint, authors, version.number)
        self._build_galleys(node, graph, version)
        return node

    def _add_license(self, node: etree._Element, preprint: Preprint) -> None:
        record = preprint.attributes.license_record
        copyright_holders = "; ".join(split_list(record.copyright_holders if record else []))
        copyright_year = extract_year(record.year if record else None)

        license = preprint.license
        if license is not None and license.attributes.name:
            name = license.attributes.name
            text = (
                license.attributes.text
                .replace("{{year}}", copyright_year or "")
                .replace("{{copyrightHolders}}", copyright_holders)
            )
            self._add_localized(node, "rights", f"{name}: {text}" if text else name)
        if license is not None and license.attributes.url:
            etree.SubElement(node, _tag("licenseUrl")).text = license.attributes.url

        if copyright_holders:
            self._add_localized(node, "copyrightHolder", copyright_holders)
        if copyright_year:
            etree.SubElement(node, _tag("copyrightYear")).text = copyright_year

    def _build_authors(
        self,
        parent: etree._Element,
        preprint: Preprint,
        authors: list[Author],
        version: int,
    ) -> None:
        authors_node = self._add_namespaced(parent, "authors")
        for seq, author in enumerate(authors, start=1):
            contributor = author.contributor
            node = etree.SubElement(authors_node, _tag("author"))
            node.set("include_in_browse", "true")
            node.set("primary_contact", "1" if seq == 1 else "0")
            node.set("user_group_ref", DefaultValues.USER_GROUP)
            node.set("seq", str(contributor.attributes.index))
            node.set("id", str(author_position(version, len(authors), seq)))

            given_name, family_name = self._author_name(preprint, author)
            self._add_localized(node, "givenname", given_name)
            self._add_localized(node, "familyname", family_name)

            affiliations = [
                institution.attributes.name
                for institution in author.institutions
                if institution.attributes.name
            ]
            if affiliations:
                self._add_localized(node, "affiliation", "; ".join(affiliations))

            etree.SubElement(node, _tag("email")).text = self.settings.format_email(
                self._author_id(author)
            )

            orcid = self._orcid(author)
            if orcid:
                etree.SubElement(node, _tag("orcid")).text = f"{ORCID_PREFIX}{orcid}"

    def _author_name(self, preprint: Preprint, author: Author) -> tuple[str, str]:
        """Given (with middle names) and family name of an author.

        Falls back to the names left in the error payload when the user
        lookup failed upstream.
        """
        user = author.contributor.user
        names = user.attributes if user is not None else author.contributor.fallback_name
        if names is None:
            raise ContractViolationError(
                f"Contributor {author.contributor.id} has no name information",
                preprint_id=preprint.id,
            )
        given_name = names.given_name or names.full_name
        if names.middle_names:
            given_name = f"{given_name} {names.middle_names}"
        return given_name, names.family_name

    def _author_id(self, author: Author) -> str:
        user = author.contributor.user
        if user is not None:
            return user.id
        # contributor ids are "<preprint id>-<user id>"
        return re.sub(r"^\w+-", "", author.contributor.id)

    def _orcid(self, author: Author) -> str | None:
        user = author.contributor.user
        if user is None:
            return None
        for kind, value in (user.attributes.social or {}).items():
            if kind != "orcid":
                continue
            if isinstance(value, list):
                value = value[0] if value else None
            return value or None
        return None

    def _build_galleys(
        self,
        parent: etree._Element,
        graph: ResourceGraph,
        version: ReconciledVersion,
    ) -> None:
        preprint = graph.preprint
        galleys = [
            Galley(entry.revision.extension.upper(), file_id=entry.local_id)
            for entry in version.submission_files
        ]
        if self.settings.save_supplementary_files:
            galleys.extend(
                Galley(SUPPLEMENTARY_LABEL, file_id=entry.local_id)
                for entry in version.supplementary_files
            )
        elif graph.supplementary_link:
            galleys.append(Galley(SUPPLEMENTARY_LABEL, remote=graph.supplementary_link))
        galleys.extend(Galley(DATA_LABEL, remote=link) for link in preprint.attributes.data_links)
        galleys.extend(
            Galley(PREREGISTRATION_LABEL, remote=link)
            for link in preprint.attributes.prereg_links
        )

        doi = preprint.links.preprint_doi
        for index, galley in enumerate(galleys):
            node = self._add_namespaced(parent, "preprint_galley")
            node.set("locale", self.settings.locale)
            node.set("url_path", "")
            node.set("approved", "false")

            self._add_identifier(
                node,
                IdentifierType.INTERNAL,
                galley_position(version.number, len(galleys), index + 1),
            )
            if self.settings.tag_galley_doi and doi and version.number == 1 and index == 0:
                self._add_identifier(node, IdentifierType.DOI, doi)
            self._add_localized(node, "name", galley.label)
            etree.SubElement(node, _tag("seq")).text = str(index)

            if galley.remote is not None:
                etree.SubElement(node, _tag("remote")).set("src", galley.remote)
            else:
                etree.SubElement(node, _tag("submission_file_ref")).set("id", str(galley.file_id))

    def _ensure_uploader(self, root: etree._Element) -> None:
        """Record the first author as uploader when no import user is configured."""
        if self.settings.user:
            return
        email = root.findtext(
            f"{_tag('publication')}/{_tag('authors')}/{_tag('author')}/{_tag('email')}"
        )
        if not email:
            return
        uploader = email.split("@", 1)[0]
        for node in root.iterfind(_tag("submission_file")):
            node.set("uploader", uploader)

    # ------------------------------------------------------------------
    # Node helpers
    # ------------------------------------------------------------------

    def _add_localized(
        self, parent: etree._Element, name: str, value: str | None = None
    ) -> etree._Element:
        node = etree.SubElement(parent, _tag(name))
        node.set("locale", self.settings.locale)
        if value is not None:
            node.text = INVALID_XML_CHARS.sub("", value)
        return node

    def _add_namespaced(self, parent: etree._Element, name: str) -> etree._Element:
        node = etree.SubElement(parent, _tag(name))
        node.set(f"{{{XSI_NS}}}schemaLocation", SCHEMA_LOCATION)
        return node

    def _add_identifier(
        self, parent: etree._Element, kind: IdentifierType, value
    ) -> etree._Element:
        node = etree.SubElement(parent, _tag("id"))
        text = str(value)
        if kind is IdentifierType.DOI:
            text = text.removeprefix(DOI_PREFIX)
        node.text = text
        node.set("type", kind.value)
        node.set("advice", kind.advice.value)
        return node
