"""
Identity Directory (GoTrue Admin API) adapter tests.

The HTTP session is replaced with a fake so the tests cover request shape,
paging, error-message extraction and conflict detection without Supabase.
"""
from __future__ import annotations

import pytest
import requests

from backend.identity_access.config import ProvisioningConfig
from backend.identity_access.directory import SupabaseIdentityDirectory, humanize_identifier
from backend.identity_access.domain import DirectoryError, IdentityConflictError


class _Resp:
    def __init__(self, status: int, data):
        self.status_code = status
        self._data = data

    def json(self):
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


class _FakeSession:
    def __init__(self, *, get=None, post=None):
        self._get = get
        self._post = post
        self.calls: list[tuple] = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append(("GET", url, headers, params, timeout))
        return self._get(url, params)

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append(("POST", url, headers, json, timeout))
        return self._post(url, json)


def _cfg(page_size: int = 2) -> ProvisioningConfig:
    return ProvisioningConfig(
        supabase_url="https://proj.supabase.co",
        service_role_key="service-key",
        http_timeout_seconds=7.0,
        directory_page_size=page_size,
    )


def _user(idx: int, email: str, name: str | None = None) -> dict:
    return {
        "id": f"uid-{idx}",
        "email": email,
        "user_metadata": {"full_name": name} if name else {},
        "email_confirmed_at": "2024-01-01T00:00:00Z",
    }


def test_find_by_email_pages_until_match():
    pages = {
        1: [_user(1, "one@x.com"), _user(2, "two@x.com")],
        2: [_user(3, "a@x.com", "A One")],
    }
    session = _FakeSession(get=lambda url, params: _Resp(200, {"users": pages.get(params["page"], [])}))
    d = SupabaseIdentityDirectory(_cfg(page_size=2), session=session)

    ident = d.find_by_email("a@x.com")

    assert ident is not None
    assert ident.identity_id == "uid-3"
    assert ident.display_name == "A One"
    assert ident.confirmed is True
    assert [c[3]["page"] for c in session.calls] == [1, 2]
    _, url, headers, params, timeout = session.calls[0]
    assert url == "https://proj.supabase.co/auth/v1/admin/users"
    assert headers["apikey"] == "service-key"
    assert headers["Authorization"] == "Bearer service-key"
    assert params["per_page"] == 2
    assert timeout == 7.0


def test_find_by_email_stops_on_short_page_and_is_case_sensitive():
    session = _FakeSession(get=lambda url, params: _Resp(200, {"users": [_user(1, "A@x.com")]}))
    d = SupabaseIdentityDirectory(_cfg(page_size=2), session=session)

    assert d.find_by_email("a@x.com") is None
    assert len(session.calls) == 1


def test_find_by_email_surfaces_server_message():
    session = _FakeSession(get=lambda url, params: _Resp(401, {"msg": "Invalid API key"}))
    d = SupabaseIdentityDirectory(_cfg(), session=session)

    with pytest.raises(DirectoryError, match="Invalid API key"):
        d.find_by_email("a@x.com")


def test_transport_error_becomes_directory_error():
    def boom(url, params):
        raise requests.ConnectionError("Connection refused")

    d = SupabaseIdentityDirectory(_cfg(), session=_FakeSession(get=boom))

    with pytest.raises(DirectoryError, match="Connection refused"):
        d.find_by_email("a@x.com")


def test_create_sends_confirmed_identity_with_metadata():
    session = _FakeSession(post=lambda url, body: _Resp(200, _user(9, body["email"], body["user_metadata"]["full_name"])))
    d = SupabaseIdentityDirectory(_cfg(), session=session)

    ident = d.create("a@x.com", "secret1", {"full_name": "A One"})

    assert ident.identity_id == "uid-9"
    assert ident.display_name == "A One"
    _, url, _, body, _ = session.calls[0]
    assert url == "https://proj.supabase.co/auth/v1/admin/users"
    assert body == {
        "email": "a@x.com",
        "password": "secret1",
        "email_confirm": True,
        "user_metadata": {"full_name": "A One"},
    }


@pytest.mark.parametrize(
    "status,body",
    [
        (422, {"code": 422, "error_code": "email_exists", "msg": "A user with this email address has already been registered"}),
        (422, {"code": 422, "msg": "Email address already registered by another user"}),
        (409, {"message": "duplicate"}),
    ],
)
def test_create_conflict_shapes(status, body):
    d = SupabaseIdentityDirectory(_cfg(), session=_FakeSession(post=lambda url, b: _Resp(status, body)))

    with pytest.raises(IdentityConflictError):
        d.create("a@x.com", "secret1", {})


def test_create_policy_rejection_is_plain_directory_error():
    body = {"code": 422, "error_code": "weak_password", "msg": "Password should be at least 6 characters."}
    d = SupabaseIdentityDirectory(_cfg(), session=_FakeSession(post=lambda url, b: _Resp(422, body)))

    with pytest.raises(DirectoryError) as excinfo:
        d.create("a@x.com", "123", {})
    assert not isinstance(excinfo.value, IdentityConflictError)
    assert str(excinfo.value) == "Password should be at least 6 characters."


def test_error_without_json_body_reports_status():
    d = SupabaseIdentityDirectory(_cfg(), session=_FakeSession(post=lambda url, b: _Resp(502, ValueError("no json"))))

    with pytest.raises(DirectoryError, match="HTTP 502"):
        d.create("a@x.com", "secret1", {})


def test_display_name_falls_back_to_humanized_email():
    session = _FakeSession(get=lambda url, params: _Resp(200, {"users": [_user(1, "ada.lovelace@x.com")]}))
    d = SupabaseIdentityDirectory(_cfg(), session=session)

    assert d.find_by_email("ada.lovelace@x.com").display_name == "Ada Lovelace"
    assert humanize_identifier("") == ""
