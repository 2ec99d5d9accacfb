"""Pytest fixtures for preprint-migrator tests."""

from unittest.mock import MagicMock

import pytest

from preprint_migrator.clients import OsfClient
from schemas.osf import Preprint
from schemas.settings import ImportSettings

BASE_URL = "https://api.osf.io/v2/"
PREPRINT_URL = f"{BASE_URL}preprints/abc12/"
NODE_URL = f"{BASE_URL}nodes/node1/"


def related(href):
    return {"links": {"related": {"href": href}}}


def page(items, next_url=None, total=None):
    """A JSON:API page payload."""
    return {
        "data": items,
        "links": {"next": next_url},
        "meta": {"total": len(items) if total is None else total},
    }


def make_response(payload=None, status_code=200, content=b"", url=""):
    """Build a mock httpx response."""
    response = MagicMock()
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.url = url
    response.json.return_value = payload
    response.content = content
    return response


def route(routes, calls):
    """Side effect answering requests from a URL -> payload mapping.

    Dict values are JSON bodies, bytes are raw content and ints are error
    status codes. Unknown URLs answer 404.
    """

    def request(method, url, **kwargs):
        calls.append(url)
        target = routes.get(url, 404)
        if isinstance(target, Exception):
            raise target
        if isinstance(target, int):
            return make_response(status_code=target, url=url)
        if isinstance(target, bytes):
            return make_response(content=target, url=url)
        return make_response(payload=target, url=url)

    return request


def make_folder(folder_id, files_url=None):
    folder = {"id": folder_id, "type": "files", "attributes": {"kind": "folder"}, "relationships": {}}
    if files_url:
        folder["relationships"]["files"] = related(files_url)
    return folder


def make_file(file_id, name, downloads=0, date_created="2021-01-01T00:00:00Z"):
    return {
        "id": file_id,
        "type": "files",
        "attributes": {
            "name": name,
            "kind": "file",
            "size": 1,
            "date_created": date_created,
            "extra": {"downloads": downloads},
        },
        "relationships": {"versions": related(f"{BASE_URL}files/{file_id}/versions/")},
        "links": {"download": f"https://osf.io/download/{file_id}/"},
    }


def make_version(version_id, name, size, date_created, file_id="f1"):
    return {
        "id": version_id,
        "type": "file_versions",
        "attributes": {
            "name": name,
            "size": size,
            "content_type": "application/octet-stream",
            "date_created": date_created,
        },
        "links": {"download": f"https://osf.io/download/{file_id}/?revision={version_id}"},
    }


def make_contributor(contributor_id, index, user=None, errors=None):
    users = {"data": user} if user is not None else {"errors": errors or []}
    return {
        "id": contributor_id,
        "type": "contributors",
        "attributes": {"index": index, "bibliographic": True},
        "embeds": {"users": users},
    }


def make_user(user_id, given_name, family_name, middle_names="", social=None):
    return {
        "id": user_id,
        "type": "users",
        "attributes": {
            "given_name": given_name,
            "middle_names": middle_names,
            "family_name": family_name,
            "full_name": f"{given_name} {family_name}",
            "social": social or {},
        },
        "relationships": {
            "institutions": related(f"{BASE_URL}users/{user_id}/institutions/"),
        },
    }


@pytest.fixture
def preprint_data():
    """Sample OSF preprint payload with its license embedded."""
    return {
        "id": "abc12",
        "type": "preprints",
        "attributes": {
            "title": "Bridges & Tunnels",
            "description": "A study of load-bearing structures.",
            "tags": ["bridges; tunnels", " steel ", ""],
            "subjects": [[{"id": "s1", "text": "Engineering"}]],
            "date_created": "2021-01-09T10:00:00.000000Z",
            "date_published": "2021-03-05T12:00:00.000000Z",
            "date_modified": "2021-03-06T12:00:00.000000Z",
            "license_record": {
                "copyright_holders": ["Ada Lovelace; Alan Turing"],
                "year": "circa 2019",
            },
            "reviews_state": "accepted",
            "doi": "10.1000/vor.1",
            "data_links": ["https://example.org/data"],
            "prereg_links": [],
        },
        "relationships": {
            "files": related(f"{PREPRINT_URL}files/"),
            "node": related(NODE_URL),
            "bibliographic_contributors": related(f"{PREPRINT_URL}bibliographic_contributors/"),
            "subjects": related(f"{PREPRINT_URL}subjects/"),
        },
        "links": {
            "preprint_doi": "https://doi.org/10.31224/osf.io/abc12",
            "html": "https://osf.io/preprints/engrxiv/abc12/",
        },
        "embeds": {
            "license": {
                "data": {
                    "id": "lic1",
                    "attributes": {
                        "name": "CC-By Attribution 4.0 International",
                        "text": "Copyright {{year}} {{copyrightHolders}}",
                        "url": "https://creativecommons.org/licenses/by/4.0/",
                    },
                }
            }
        },
    }


@pytest.fixture
def preprint(preprint_data):
    return Preprint.model_validate(preprint_data)


@pytest.fixture
def osf_routes(preprint_data):
    """Upstream responses for the sample preprint.

    paper.pdf has two revisions, data.docx one; the node holds one
    supplementary file; two contributors are listed out of index order.
    """
    return {
        f"{PREPRINT_URL}files/": page([make_folder("osfstorage", f"{PREPRINT_URL}files/osfstorage/")]),
        f"{PREPRINT_URL}files/osfstorage/": page(
            [make_file("f1", "paper.pdf", downloads=42), make_file("f2", "data.docx", downloads=7)]
        ),
        f"{BASE_URL}files/f1/versions/": page(
            [
                make_version("2", "paper.pdf", 200, "2021-03-01T09:00:00Z", "f1"),
                make_version("1", "paper.pdf", 100, "2021-01-10T09:00:00Z", "f1"),
            ]
        ),
        f"{BASE_URL}files/f2/versions/": page(
            [make_version("1", "data.docx", 50, "2021-01-12T09:00:00Z", "f2")]
        ),
        NODE_URL: {
            "data": {
                "id": "node1",
                "type": "nodes",
                "attributes": {"title": "Supplementary materials"},
                "relationships": {"files": related(f"{NODE_URL}files/")},
                "links": {"html": "https://osf.io/node1/"},
            }
        },
        f"{NODE_URL}files/": page([make_folder("osfstorage", f"{NODE_URL}files/osfstorage/")]),
        f"{NODE_URL}files/osfstorage/": page([make_file("s1", "measurements.csv", downloads=3)]),
        f"{BASE_URL}files/s1/versions/": page(
            [make_version("1", "measurements.csv", 30, "2021-02-01T09:00:00Z", "s1")]
        ),
        f"{PREPRINT_URL}bibliographic_contributors/": page(
            [
                make_contributor("abc12-u2", 1, make_user("u2", "Alan", "Turing", middle_names="M.")),
                make_contributor(
                    "abc12-u1",
                    0,
                    make_user("u1", "Ada", "Lovelace", social={"orcid": "0000-0001-2345-6789"}),
                ),
            ]
        ),
        f"{BASE_URL}users/u1/institutions/": page(
            [{"id": "pu", "type": "institutions", "attributes": {"name": "Princeton University"}}]
        ),
        f"{BASE_URL}users/u2/institutions/": page([]),
        f"{PREPRINT_URL}subjects/": page(
            [
                {"id": "s1", "type": "subjects", "attributes": {"text": "Engineering"}},
                {"id": "s2", "type": "subjects", "attributes": {"text": "Civil Engineering"}},
            ]
        ),
        "https://osf.io/download/f1/?revision=1": b"%PDF-1.4 first",
        "https://osf.io/download/f1/?revision=2": b"%PDF-1.4 second",
        "https://osf.io/download/f2/?revision=1": b"docx bytes",
        "https://osf.io/download/s1/?revision=1": b"a,b\n1,2\n",
        "preprints/?embed=license&filter[provider]=engrxiv": page([preprint_data], total=1),
        "preprints/abc12/?embed=license": {"data": preprint_data},
    }


@pytest.fixture
def request_log():
    """URLs requested through the routed client, in order."""
    return []


@pytest.fixture
def osf_client(osf_routes, request_log):
    """OsfClient whose httpx client answers from ``osf_routes``."""
    client = OsfClient({"base_url": BASE_URL})
    mock_http_client = MagicMock()
    mock_http_client.request.side_effect = route(osf_routes, request_log)
    client._client = mock_http_client
    return client


@pytest.fixture
def settings(tmp_path):
    """Import settings writing under a temporary directory."""
    return ImportSettings(output=tmp_path / "out", sleep_seconds=0)
