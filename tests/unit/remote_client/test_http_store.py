"""Unit tests for remote_client.http_store module."""

import json

import pytest
import requests
from requests.exceptions import ConnectionError, ReadTimeout

from cms_mirror.mirror.models import Component, ObjectKind, RemoteSnapshot, Style
from cms_mirror.remote_client.auth import Credentials
from cms_mirror.remote_client.errors import (
    APIAccessError,
    InvalidCredentialsError,
    RemoteObjectNotFoundError,
    RemoteUnreachableError,
)
from cms_mirror.remote_client.http_store import DEFAULT_TIMEOUT, HTTPRemoteStore

BASE = "https://cms.test/api/containers/main"


def make_response(status_code=200, payload=None, raw=None):
    response = requests.Response()
    response.status_code = status_code
    if raw is not None:
        response._content = raw
    elif payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
    else:
        response._content = b""
    response.url = BASE
    return response


@pytest.fixture
def session(mocker):
    session = requests.Session()
    mocker.patch.object(session, "request")
    return session


@pytest.fixture
def remote(session):
    creds = Credentials(endpoint="https://cms.test/api", token="secret")
    return HTTPRemoteStore(creds, "main", session=session)


class TestHTTPRemoteStore:
    """Test cases for session setup and error translation."""

    def test_sets_bearer_token(self, remote, session):
        assert session.headers["Authorization"] == "Bearer secret"

    def test_clients_are_cached_per_kind(self, remote):
        assert remote.client(ObjectKind.STYLE) is remote.client(ObjectKind.STYLE)
        assert remote.client(ObjectKind.STYLE) is not remote.client(ObjectKind.COMPONENT)

    def test_container_name_is_quoted(self, session):
        creds = Credentials(endpoint="https://cms.test/api", token="secret")
        store = HTTPRemoteStore(creds, "my site", session=session)

        assert store.client(ObjectKind.STYLE).base_url == "https://cms.test/api/containers/my%20site/styles"

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_failures(self, remote, session, status_code):
        session.request.return_value = make_response(status_code)

        with pytest.raises(InvalidCredentialsError):
            remote.client(ObjectKind.STYLE).get("7")

    def test_not_found(self, remote, session):
        session.request.return_value = make_response(404)

        with pytest.raises(RemoteObjectNotFoundError) as exc_info:
            remote.client(ObjectKind.STYLE).get("7")

        assert exc_info.value.kind == "style"
        assert exc_info.value.key == "7"

    def test_server_error(self, remote, session):
        session.request.return_value = make_response(500)

        with pytest.raises(APIAccessError) as exc_info:
            remote.client(ObjectKind.STYLE).get("7")

        assert exc_info.value.status_code == 500

    @pytest.mark.parametrize("error", [ReadTimeout("slow"), ConnectionError("refused")])
    def test_unreachable(self, remote, session, error):
        session.request.side_effect = error

        with pytest.raises(RemoteUnreachableError) as exc_info:
            remote.client(ObjectKind.STYLE).list_snapshot()

        assert exc_info.value.endpoint == "https://cms.test/api"

    def test_invalid_json(self, remote, session):
        session.request.return_value = make_response(raw=b"<html>oops</html>")

        with pytest.raises(APIAccessError):
            remote.client(ObjectKind.STYLE).get("7")

    def test_rate_limit_is_retried(self, remote, session, mocker):
        """429 responses are retried with backoff before succeeding."""
        sleep = mocker.patch("time.sleep")
        session.request.side_effect = [
            make_response(429),
            make_response(200, {"handle": "base", "content": "", "id": 7}),
        ]

        style = remote.client(ObjectKind.STYLE).get("7")

        assert style.id == "7"
        sleep.assert_called_once_with(1)


class TestHTTPKindClient:
    """Test cases for the per-kind endpoints."""

    def test_list_snapshot(self, remote, session):
        """Numeric ids become strings and a missing revision becomes empty."""
        session.request.return_value = make_response(200, [
            {"id": 1, "revision": 3},
            {"id": "2", "revision": None},
        ])

        snapshot = remote.client(ObjectKind.STYLE).list_snapshot()

        assert snapshot == [RemoteSnapshot("1", "3"), RemoteSnapshot("2", "")]
        session.request.assert_called_once_with(
            "GET", f"{BASE}/styles/snapshot", timeout=DEFAULT_TIMEOUT
        )

    def test_get_batch_posts_ids(self, remote, session):
        session.request.return_value = make_response(200, [
            {"handle": "home", "template": "<p/>", "id": "1", "revision": "2"},
        ])

        objects = remote.client(ObjectKind.COMPONENT).get_batch(["1"])

        assert objects == [Component(handle="home", template="<p/>", id="1", revision="2")]
        session.request.assert_called_once_with(
            "POST", f"{BASE}/components/batch", timeout=DEFAULT_TIMEOUT, json={"ids": ["1"]}
        )

    def test_empty_batch_makes_no_request(self, remote, session):
        assert remote.client(ObjectKind.COMPONENT).get_batch([]) == []
        session.request.assert_not_called()

    def test_get_by_handle(self, remote, session):
        session.request.return_value = make_response(200, {"handle": "my base", "id": "7"})

        style = remote.client(ObjectKind.STYLE).get_by_handle("my base")

        assert style.handle == "my base"
        assert session.request.call_args.args[1] == f"{BASE}/styles/by-handle/my%20base"

    def test_create_merges_server_fields(self, remote, session):
        """The returned object carries the id and revision assigned remotely."""
        session.request.return_value = make_response(200, {"id": "123", "revision": "1"})

        created = remote.client(ObjectKind.STYLE).create(Style(handle="base", content="a {}"))

        assert created == Style(handle="base", content="a {}", id="123", revision="1")
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", f"{BASE}/styles")
        assert session.request.call_args.kwargs["json"]["kind"] == "style"

    def test_update_puts_to_object_url(self, remote, session):
        session.request.return_value = make_response(200, {"revision": "5"})

        updated = remote.client(ObjectKind.STYLE).update(Style(handle="base", id="7", revision="4"))

        assert updated.revision == "5"
        assert session.request.call_args.args == ("PUT", f"{BASE}/styles/7")

    def test_update_without_id(self, remote, session):
        with pytest.raises(ValueError):
            remote.client(ObjectKind.STYLE).update(Style(handle="base"))
        session.request.assert_not_called()

    def test_delete(self, remote, session):
        session.request.return_value = make_response(204)

        assert remote.client(ObjectKind.CONTROLLER).delete("9") is None
        assert session.request.call_args.args == ("DELETE", f"{BASE}/controllers/9")
