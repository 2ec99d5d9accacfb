"""Resource graph of a single preprint.

Gathers the collections hanging off a preprint (files and their revisions,
supplementary files, contributors with institutions, subjects) through the
OSF client. Each collection is fetched on first access and cached for the
lifetime of the graph, so the document builder and the statement generator
can ask for it repeatedly without extra requests.
"""

import logging
from dataclasses import dataclass
from functools import cached_property
from pathlib import PurePosixPath

from schemas.osf import (
    Contributor,
    FileVersion,
    Folder,
    Institution,
    Node,
    OsfFile,
    Preprint,
    Subject,
)

from ..clients.exceptions import ForbiddenError, GoneError
from ..clients.osf_client import OsfClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileRevision:
    """A usable (non-empty) revision of a stored file.

    Attributes:
        name: File name at this revision
        size: Size in bytes
        date_created: When the revision was uploaded
        download_url: Direct download link of the revision content
        downloads: Download count of the owning file; only set on the
            latest revision since OSF counts downloads per file
    """

    name: str
    size: int
    date_created: str | None
    download_url: str | None
    downloads: int = 0

    @property
    def extension(self) -> str:
        return PurePosixPath(self.name).suffix.lstrip(".")


@dataclass(frozen=True)
class StoredFile:
    """A file with its usable revisions ordered oldest-first."""

    file_id: str
    name: str
    revisions: tuple[FileRevision, ...]
    supplementary: bool = False

    @property
    def downloads(self) -> int:
        return self.revisions[-1].downloads


@dataclass(frozen=True)
class Author:
    """A contributor together with its user's institutions."""

    contributor: Contributor
    institutions: tuple[Institution, ...] = ()


class ResourceGraph:
    """Memoized accessors over the OSF resources of one preprint.

    Example:
        graph = ResourceGraph(preprint, client, include_supplementary=True)
        for stored_file in graph.all_files:
            ...
    """

    def __init__(
        self,
        preprint: Preprint,
        client: OsfClient,
        include_supplementary: bool = False,
    ):
        """Initialize the graph.

        Args:
            preprint: The preprint whose relationships are followed
            client: Client used for every fetch
            include_supplementary: Whether supplementary node files count as
                deliverables (see ``all_files``)
        """
        self.preprint = preprint
        self.client = client
        self.include_supplementary = include_supplementary

    @cached_property
    def submission_files(self) -> list[StoredFile]:
        """Files attached directly to the preprint."""
        return self._collect_files(self.preprint.related_href("files"))

    @cached_property
    def node(self) -> Node | None:
        """The linked supplementary node, or None if absent or inaccessible."""
        url = self.preprint.related_href("node")
        if not url:
            return None
        try:
            return self.client.get_resource(url, Node)
        except (ForbiddenError, GoneError) as e:
            logger.info(
                f"Supplementary node of preprint {self.preprint.id} is not "
                f"available (HTTP {e.status_code})"
            )
            return None

    @cached_property
    def supplementary_files(self) -> list[StoredFile]:
        """Files stored in the supplementary node."""
        if self.node is None:
            return []
        return self._collect_files(self.node.related_href("files"), supplementary=True)

    @property
    def supplementary_link(self) -> str | None:
        """Public page of the supplementary node."""
        if self.node is None:
            return None
        return self.node.links.html

    @property
    def all_files(self) -> list[StoredFile]:
        """Every deliverable file: submission files, then supplementary ones."""
        if not self.include_supplementary:
            return list(self.submission_files)
        return [*self.submission_files, *self.supplementary_files]

    @cached_property
    def subjects(self) -> list[str]:
        """Subject names from the subjects relationship or the inline attribute."""
        url = self.preprint.related_href("subjects")
        if url:
            return [subject.attributes.text for subject in self.client.paginate(url, Subject)]

        inline = self.preprint.attributes.subjects
        if not inline:
            return []
        return [subject.text for subject in inline[0]]

    @cached_property
    def authors(self) -> list[Author]:
        """Bibliographic contributors ordered by their index."""
        url = self.preprint.related_href("bibliographic_contributors")
        if not url:
            return []

        contributors = list(self.client.paginate(url, Contributor))
        contributors.sort(key=lambda contributor: contributor.attributes.index)
        return [self._load_author(contributor) for contributor in contributors]

    def _load_author(self, contributor: Contributor) -> Author:
        user = contributor.user
        url = user.related_href("institutions") if user is not None else None
        if not url:
            return Author(contributor=contributor)
        institutions = tuple(self.client.paginate(url, Institution))
        return Author(contributor=contributor, institutions=institutions)

    def _collect_files(
        self, url: str | None, supplementary: bool = False
    ) -> list[StoredFile]:
        """Walk storage folders and assemble their files.

        Args:
            url: Related link listing the storage folders
            supplementary: Whether the files come from the supplementary node

        Returns:
            Files with at least one usable revision, in fetch order
        """
        if not url:
            return []

        files: list[StoredFile] = []
        for folder in self.client.paginate(url, Folder):
            files_url = folder.related_href("files")
            if not files_url:
                logger.debug(f"Folder {folder.id} has no files relationship")
                continue
            for osf_file in self.client.paginate(files_url, OsfFile):
                stored = self._assemble_file(osf_file, supplementary)
                if stored is not None:
                    files.append(stored)
        return files

    def _assemble_file(
        self, osf_file: OsfFile, supplementary: bool
    ) -> StoredFile | None:
        """Group the usable revisions of a file, oldest-first.

        OSF lists revisions newest-first. Empty revisions are dropped; a
        file left without revisions is dropped entirely.
        """
        name = osf_file.attributes.name
        versions_url = osf_file.related_href("versions")
        if not versions_url:
            logger.debug(f"Skipped {name!r} at preprint {self.preprint.id}: not a file")
            return None

        versions: list[FileVersion] = []
        for version in self.client.paginate(versions_url, FileVersion):
            if version.attributes.size <= 0:
                logger.warning(
                    f"Skipped empty revision {version.id} of file {name!r} "
                    f"at preprint {self.preprint.id}"
                )
                continue
            versions.append(version)

        if not versions:
            logger.warning(
                f"Skipped file {name!r} without usable revisions "
                f"at preprint {self.preprint.id}"
            )
            return None

        versions.reverse()
        downloads = osf_file.attributes.extra.downloads
        last = len(versions) - 1
        revisions = tuple(
            FileRevision(
                name=version.attributes.name or name,
                size=version.attributes.size,
                date_created=version.attributes.date_created
                or osf_file.attributes.date_created,
                download_url=version.links.download or osf_file.links.download,
                downloads=downloads if index == last else 0,
            )
            for index, version in enumerate(versions)
        )
        return StoredFile(
            file_id=osf_file.id,
            name=name,
            revisions=revisions,
            supplementary=supplementary,
        )
