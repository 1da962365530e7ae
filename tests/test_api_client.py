import pytest
import requests

from api_client import DatastoreClient, eq_filter, extract_error_message, in_filter


class DummyResponse:
    def __init__(self, payload=None, *, status_code: int = 200, text: str = "") -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


def _capture(monkeypatch, response: DummyResponse) -> list[dict]:
    calls: list[dict] = []

    def fake_request(method, url, **kwargs):
        calls.append({"method": method, "url": url, **kwargs})
        return response

    monkeypatch.setattr(requests, "request", fake_request)
    return calls


def test_select_forwards_filters_and_headers(monkeypatch):
    calls = _capture(monkeypatch, DummyResponse([{"id": "c1"}]))

    client = DatastoreClient("https://db.example/", api_key="anon", timeout=7)
    rows = client.select(
        "conversations",
        filters={"user_id": eq_filter("u1")},
        order="created_at.asc",
    )

    assert rows == [{"id": "c1"}]
    call = calls[0]
    assert call["method"] == "get"
    assert call["url"] == "https://db.example/rest/v1/conversations"
    assert call["params"] == {"select": "*", "user_id": "eq.u1", "order": "created_at.asc"}
    assert call["headers"]["apikey"] == "anon"
    assert call["headers"]["Authorization"] == "Bearer anon"
    assert call["timeout"] == 7


def test_insert_requests_representation(monkeypatch):
    calls = _capture(monkeypatch, DummyResponse([{"id": "m1", "text": "hi"}]))

    row = DatastoreClient("https://db.example", api_key="anon").insert("messages", {"text": "hi"})

    assert row["id"] == "m1"
    assert calls[0]["headers"]["Prefer"] == "return=representation"
    assert calls[0]["json"] == {"text": "hi"}


def test_insert_without_row_raises(monkeypatch):
    _capture(monkeypatch, DummyResponse([]))

    with pytest.raises(ValueError):
        DatastoreClient("https://db.example").insert("messages", {"text": "hi"})


def test_error_status_raises_http_error(monkeypatch):
    _capture(monkeypatch, DummyResponse({"message": "denied"}, status_code=403))

    with pytest.raises(requests.HTTPError):
        DatastoreClient("https://db.example").delete("conversations", filters={"id": eq_filter("c1")})


def test_signed_url_is_made_absolute(monkeypatch):
    _capture(monkeypatch, DummyResponse({"signedURL": "/object/sign/chat-documents/a.pdf?token=t"}))

    url = DatastoreClient("https://db.example").create_signed_url("chat-documents", "a.pdf", 3600)

    assert url == "https://db.example/storage/v1/object/sign/chat-documents/a.pdf?token=t"


def test_upload_object_strips_bucket_from_key(monkeypatch):
    calls = _capture(monkeypatch, DummyResponse({"Key": "chat-images/uploads/a.png"}))

    path = DatastoreClient("https://db.example").upload_object(
        "chat-images", "uploads/a.png", b"png", content_type="image/png"
    )

    assert path == "uploads/a.png"
    assert calls[0]["data"] == b"png"
    assert calls[0]["headers"]["Content-Type"] == "image/png"


def test_in_filter_and_error_message():
    assert in_filter(["a", "b"]) == "in.(a,b)"
    assert extract_error_message(DummyResponse({"detail": "bad"})) == "bad"
    assert extract_error_message(DummyResponse(None, text="oops")) == "oops"
