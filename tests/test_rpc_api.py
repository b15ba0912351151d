"""
Tests for the AUR RPC compatible /rpc endpoint.

Tests validate:
- Request validation messages and reported versions
- search by each field and info lookups over GET and POST
- JSONP rendering
- Error handling when the index is unavailable
"""

import json

import pytest

from aur_mirror_meta.core.dependencies import get_index_store
from aur_mirror_meta.core.errors import StorageError
from aur_mirror_meta.main import app

from tests.helpers import PARU_COMMIT


def rpc(client, **params):
    response = client.get("/rpc", params=params)
    assert response.status_code == 200
    return response.json()


class TestValidation:
    """Invalid requests answer with HTTP 200 and an RPC error object."""

    def test_missing_version(self, client):
        body = rpc(client, type="search", arg="paru")

        assert body == {
            "error": "Please specify an API version.",
            "resultcount": 0,
            "results": [],
            "type": "error",
            "version": None,
        }

    def test_unsupported_version_is_echoed(self, client):
        body = rpc(client, v="6", type="search", arg="paru")

        assert body["error"] == "Invalid version specified."
        assert body["version"] == 6

    def test_non_numeric_version(self, client):
        body = rpc(client, v="abc", type="search", arg="paru")

        assert body["error"] == "Invalid version specified."
        assert body["version"] is None

    def test_missing_type(self, client):
        body = rpc(client, v="5")

        assert body["error"] == "No request type/data specified."
        assert body["version"] == 5

    def test_unknown_type(self, client):
        assert rpc(client, v="5", type="suggest")["error"] == "Incorrect request type specified."

    def test_empty_search_keyword(self, client):
        assert rpc(client, v="5", type="search")["error"] == "Query arg too small."
        assert rpc(client, v="5", type="search", arg="")["error"] == "Query arg too small."

    def test_unknown_search_field(self, client):
        body = rpc(client, v="5", type="search", by="maintainer", arg="paru")

        assert body["error"] == "Incorrect by field specified."

    def test_info_without_args(self, client):
        assert rpc(client, v="5", type="info")["error"] == "No request type/data specified."


class TestSearch:
    """Tests for type=search."""

    def test_default_field_is_name_desc(self, client):
        body = rpc(client, v="5", type="search", arg="helper")

        assert body["type"] == "search"
        assert body["resultcount"] == 1
        assert "error" not in body
        (result,) = body["results"]
        assert result["Name"] == "paru"
        assert result["PackageBase"] == "paru"
        assert result["Version"] == "2.0.4-1"
        assert result["Description"] == "Feature packed AUR helper"
        assert result["URL"] == "https://github.com/morganamilo/paru"
        assert result["URLPath"] == "/cgit/aur.git/snapshot/paru.tar.gz"
        assert result["OutOfDate"] is None
        assert result["NumVotes"] == 0

    def test_by_name(self, client):
        body = rpc(client, v="5", type="search", by="name", arg="foo")

        assert [r["Name"] for r in body["results"]] == ["python-foo", "python-foo-docs"]
        assert {r["PackageBase"] for r in body["results"]} == {"python-foo"}

    def test_by_name_does_not_look_at_descriptions(self, client):
        body = rpc(client, v="5", type="search", by="name", arg="helper")

        assert body["resultcount"] == 0
        assert body["results"] == []

    def test_by_depends(self, client):
        body = rpc(client, v="5", type="search", by="depends", arg="pacman>=6.1")

        assert [r["Name"] for r in body["results"]] == ["paru"]

    def test_by_makedepends(self, client):
        body = rpc(client, v="5", type="search", by="makedepends", arg="python-build")

        assert body["resultcount"] == 2

    def test_only_first_arg_is_used(self, client):
        response = client.get("/rpc", params={"v": "5", "type": "search", "arg": ["paru", "foo"]})

        assert [r["Name"] for r in response.json()["results"]] == ["paru"]


class TestInfo:
    """Tests for type=info."""

    def test_info_with_bracket_args(self, client):
        response = client.get(
            "/rpc", params={"v": "5", "type": "info", "arg[]": ["paru", "python-foo", "missing"]}
        )
        body = response.json()

        assert body["type"] == "multiinfo"
        assert body["resultcount"] == 2
        paru, foo = body["results"]
        assert paru["Name"] == "paru"
        assert paru["Depends"] == ["git", "glibc", "pacman>=6.1"]
        assert paru["MakeDepends"] == ["cargo"]
        assert paru["OptDepends"] == ["bat: colored pkgbuild printing"]
        assert paru["CheckDepends"] == []
        assert paru["License"] == []
        assert paru["Keywords"] == []
        assert foo["Version"] == "1:1.2-3"
        assert foo["Depends"] == ["python-bar"]

    def test_info_with_plain_args(self, client):
        body = rpc(client, v="5", type="info", arg="python-foo-docs")

        (docs,) = body["results"]
        assert docs["Groups"] == ["docs"]
        assert docs["Description"] == "Documentation for foo"

    def test_info_over_post(self, client):
        response = client.post(
            "/rpc", data={"v": "5", "type": "info", "arg[]": ["paru", "python-foo"]}
        )

        assert response.status_code == 200
        body = response.json()
        assert [r["Name"] for r in body["results"]] == ["paru", "python-foo"]

    def test_post_validation(self, client):
        response = client.post("/rpc", data={"type": "info", "arg": "paru"})

        assert response.json()["error"] == "Please specify an API version."


class TestJsonp:
    def test_callback_wraps_body(self, client):
        response = client.get(
            "/rpc", params={"v": "5", "type": "search", "arg": "helper", "callback": "handle"}
        )

        assert response.headers["content-type"].startswith("application/javascript")
        text = response.text
        assert text.startswith("handle(")
        assert text.endswith(");")
        body = json.loads(text[len("handle("):-2])
        assert body["results"][0]["Name"] == "paru"

    def test_dotted_callback_is_accepted(self, client):
        response = client.get(
            "/rpc", params={"v": "5", "type": "search", "arg": "helper", "callback": "jQuery.cb_1"}
        )

        assert response.status_code == 200
        assert response.text.startswith("jQuery.cb_1(")

    @pytest.mark.parametrize("callback", ["alert(1)//", "cb;evil", "a" * 129])
    def test_invalid_callback_is_refused(self, client, callback):
        response = client.get(
            "/rpc", params={"v": "5", "type": "search", "arg": "helper", "callback": callback}
        )

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/json")
        assert response.json()["error"] == "Invalid callback name."
        assert callback not in response.text

    def test_callback_wraps_errors(self, client):
        response = client.get("/rpc", params={"callback": "cb"})

        assert response.text.startswith("cb(")
        assert "Please specify an API version." in response.text


class BrokenStore:
    def search_packages(self, search_type, keyword):
        raise StorageError("database is locked")

    def get_package_details(self, package_names):
        raise StorageError("database is locked")


class TestStorageFailure:
    @pytest.fixture
    def broken_client(self, client):
        app.dependency_overrides[get_index_store] = lambda: BrokenStore()
        return client

    def test_search_returns_500(self, broken_client):
        response = broken_client.get("/rpc", params={"v": "5", "type": "search", "arg": "paru"})

        assert response.status_code == 500

    def test_info_returns_500(self, broken_client):
        response = broken_client.get("/rpc", params={"v": "5", "type": "info", "arg": "paru"})

        assert response.status_code == 500


def test_commit_is_not_exposed(client):
    body = rpc(client, v="5", type="info", arg="paru")

    assert PARU_COMMIT not in json.dumps(body)
