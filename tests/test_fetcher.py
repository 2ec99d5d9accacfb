"""Tests for the ResourceGraph fetcher."""

import logging

import pytest

from conftest import (
    BASE_URL,
    NODE_URL,
    PREPRINT_URL,
    make_contributor,
    make_file,
    make_folder,
    make_version,
    page,
)
from preprint_migrator.clients import APIError
from preprint_migrator.graph import FileRevision, ResourceGraph
from schemas.osf import Preprint


class TestSubmissionFiles:
    """Tests for ResourceGraph.submission_files."""

    def test_files_in_fetch_order(self, preprint, osf_client):
        """Files are listed in the order the API returns them."""
        graph = ResourceGraph(preprint, osf_client)

        assert [stored.name for stored in graph.submission_files] == ["paper.pdf", "data.docx"]

    def test_revisions_oldest_first(self, preprint, osf_client):
        """Revisions are reversed from the API's newest-first order."""
        graph = ResourceGraph(preprint, osf_client)

        paper = graph.submission_files[0]

        assert [revision.size for revision in paper.revisions] == [100, 200]
        assert paper.revisions[0].date_created == "2021-01-10T09:00:00Z"
        assert paper.revisions[1].download_url == "https://osf.io/download/f1/?revision=2"

    def test_downloads_on_latest_revision_only(self, preprint, osf_client):
        """The file download count is attached to its latest revision."""
        graph = ResourceGraph(preprint, osf_client)

        paper = graph.submission_files[0]

        assert [revision.downloads for revision in paper.revisions] == [0, 42]
        assert paper.downloads == 42

    def test_memoized(self, preprint, osf_client, request_log):
        """The collection is fetched once however often it is read."""
        graph = ResourceGraph(preprint, osf_client)

        graph.submission_files
        count = len(request_log)
        graph.submission_files
        graph.all_files

        assert len(request_log) == count
        assert request_log.count(f"{PREPRINT_URL}files/") == 1

    def test_folder_without_files_is_skipped(self, preprint, osf_client, osf_routes):
        """A folder lacking a files relationship is skipped silently."""
        osf_routes[f"{PREPRINT_URL}files/"] = page(
            [make_folder("empty"), make_folder("osfstorage", f"{PREPRINT_URL}files/osfstorage/")]
        )
        graph = ResourceGraph(preprint, osf_client)

        assert len(graph.submission_files) == 2

    def test_empty_revisions_are_dropped(self, preprint, osf_client, osf_routes, caplog):
        """Zero-size revisions are dropped with a warning."""
        osf_routes[f"{BASE_URL}files/f1/versions/"] = page(
            [
                make_version("2", "paper.pdf", 0, "2021-03-01T09:00:00Z", "f1"),
                make_version("1", "paper.pdf", 100, "2021-01-10T09:00:00Z", "f1"),
            ]
        )
        graph = ResourceGraph(preprint, osf_client)

        with caplog.at_level(logging.WARNING):
            paper = graph.submission_files[0]

        assert len(paper.revisions) == 1
        assert "Skipped empty revision 2" in caplog.text

    def test_file_without_usable_revisions_is_dropped(self, preprint, osf_client, osf_routes):
        """A file whose revisions are all empty is dropped entirely."""
        osf_routes[f"{BASE_URL}files/f2/versions/"] = page(
            [make_version("1", "data.docx", 0, "2021-01-12T09:00:00Z", "f2")]
        )
        graph = ResourceGraph(preprint, osf_client)

        assert [stored.name for stored in graph.submission_files] == ["paper.pdf"]

    def test_revision_falls_back_to_file_fields(self, preprint, osf_client, osf_routes):
        """Missing revision date or download link fall back to the file's."""
        version = make_version("1", "data.docx", 50, None, "f2")
        version["links"] = {}
        osf_routes[f"{BASE_URL}files/f2/versions/"] = page([version])
        graph = ResourceGraph(preprint, osf_client)

        revision = graph.submission_files[1].revisions[0]

        assert revision.date_created == "2021-01-01T00:00:00Z"
        assert revision.download_url == "https://osf.io/download/f2/"

    def test_no_files_relationship(self, preprint_data, osf_client):
        """A preprint without files has no submission files."""
        del preprint_data["relationships"]["files"]
        graph = ResourceGraph(Preprint.model_validate(preprint_data), osf_client)

        assert graph.submission_files == []

    def test_fetch_failure_propagates(self, preprint, osf_client, osf_routes):
        """Transport failures are not swallowed."""
        osf_routes[f"{BASE_URL}files/f1/versions/"] = 502
        graph = ResourceGraph(preprint, osf_client)

        with pytest.raises(APIError):
            graph.submission_files


class TestFileRevision:
    """Tests for FileRevision."""

    def test_extension(self):
        """The extension is the last suffix without its dot."""
        revision = FileRevision("paper.final.PDF", 1, None, None)

        assert revision.extension == "PDF"

    def test_no_extension(self):
        """Names without suffix have an empty extension."""
        assert FileRevision("README", 1, None, None).extension == ""


class TestSupplementaryFiles:
    """Tests for the supplementary node accessors."""

    def test_supplementary_files_from_node(self, preprint, osf_client):
        """Files of the linked node are flagged supplementary."""
        graph = ResourceGraph(preprint, osf_client)

        files = graph.supplementary_files

        assert [stored.name for stored in files] == ["measurements.csv"]
        assert files[0].supplementary is True
        assert graph.supplementary_link == "https://osf.io/node1/"

    @pytest.mark.parametrize("status_code", [403, 410])
    def test_inaccessible_node_means_no_supplementary(
        self, preprint, osf_client, osf_routes, status_code
    ):
        """Forbidden or gone nodes are treated as absent."""
        osf_routes[NODE_URL] = status_code
        graph = ResourceGraph(preprint, osf_client)

        assert graph.node is None
        assert graph.supplementary_files == []
        assert graph.supplementary_link is None

    def test_other_node_errors_propagate(self, preprint, osf_client, osf_routes):
        """Other failures on the node lookup are real errors."""
        osf_routes[NODE_URL] = 500
        graph = ResourceGraph(preprint, osf_client)

        with pytest.raises(APIError):
            graph.node

    def test_all_files_excludes_supplementary_by_default(self, preprint, osf_client, request_log):
        """Supplementary files are only deliverables when requested."""
        graph = ResourceGraph(preprint, osf_client)

        assert len(graph.all_files) == 2
        assert f"{NODE_URL}files/" not in request_log

    def test_all_files_includes_supplementary(self, preprint, osf_client):
        """With include_supplementary the node files follow submission files."""
        graph = ResourceGraph(preprint, osf_client, include_supplementary=True)

        assert [stored.name for stored in graph.all_files] == [
            "paper.pdf",
            "data.docx",
            "measurements.csv",
        ]


class TestSubjects:
    """Tests for ResourceGraph.subjects."""

    def test_subjects_from_relationship(self, preprint, osf_client):
        """The paginated relationship is preferred."""
        graph = ResourceGraph(preprint, osf_client)

        assert graph.subjects == ["Engineering", "Civil Engineering"]

    def test_subjects_from_inline_attribute(self, preprint_data, osf_client, request_log):
        """Without a relationship the first inline sub-list is used."""
        del preprint_data["relationships"]["subjects"]
        preprint_data["attributes"]["subjects"] = [
            [{"id": "a", "text": "Engineering"}, {"id": "b", "text": "Mechanical Engineering"}],
            [{"id": "c", "text": "Physics"}],
        ]
        graph = ResourceGraph(Preprint.model_validate(preprint_data), osf_client)

        assert graph.subjects == ["Engineering", "Mechanical Engineering"]
        assert request_log == []

    def test_no_subjects(self, preprint_data, osf_client):
        """No relationship and no inline subjects yield an empty list."""
        del preprint_data["relationships"]["subjects"]
        preprint_data["attributes"]["subjects"] = None
        graph = ResourceGraph(Preprint.model_validate(preprint_data), osf_client)

        assert graph.subjects == []

    def test_memoized(self, preprint, osf_client, request_log):
        """Subjects are fetched once."""
        graph = ResourceGraph(preprint, osf_client)

        graph.subjects
        graph.subjects

        assert request_log.count(f"{PREPRINT_URL}subjects/") == 1


class TestAuthors:
    """Tests for ResourceGraph.authors."""

    def test_sorted_by_index(self, preprint, osf_client):
        """Contributors are ordered by their index."""
        graph = ResourceGraph(preprint, osf_client)

        assert [author.contributor.id for author in graph.authors] == ["abc12-u1", "abc12-u2"]

    def test_institutions(self, preprint, osf_client):
        """Each author carries the institutions of its user."""
        graph = ResourceGraph(preprint, osf_client)

        first, second = graph.authors

        assert [inst.attributes.name for inst in first.institutions] == ["Princeton University"]
        assert second.institutions == ()

    def test_failed_user_lookup(self, preprint, osf_client, osf_routes, request_log):
        """Contributors without user data have no institutions to fetch."""
        osf_routes[f"{PREPRINT_URL}bibliographic_contributors/"] = page(
            [
                make_contributor(
                    "abc12-gone1",
                    0,
                    errors=[{"detail": "User has been deleted", "meta": {"given_name": "Grace", "family_name": "Hopper"}}],
                )
            ]
        )
        graph = ResourceGraph(preprint, osf_client)

        (author,) = graph.authors

        assert author.contributor.user is None
        assert author.contributor.fallback_name.family_name == "Hopper"
        assert author.institutions == ()
        assert not any("institutions" in url for url in request_log)

    def test_memoized(self, preprint, osf_client, request_log):
        """Contributors and institutions are fetched once."""
        graph = ResourceGraph(preprint, osf_client)

        graph.authors
        graph.authors

        assert request_log.count(f"{PREPRINT_URL}bibliographic_contributors/") == 1
        assert request_log.count(f"{BASE_URL}users/u1/institutions/") == 1


class TestNonFileEntries:
    """Tests for entries listed among files that are not files."""

    def test_entry_without_versions_is_skipped(self, preprint, osf_client, osf_routes):
        """A nested folder listed among files is skipped."""
        nested = make_file("sub", "subfolder")
        nested["relationships"] = {}
        osf_routes[f"{PREPRINT_URL}files/osfstorage/"] = page(
            [nested, make_file("f1", "paper.pdf", downloads=42)]
        )
        graph = ResourceGraph(preprint, osf_client)

        assert [stored.name for stored in graph.submission_files] == ["paper.pdf"]
