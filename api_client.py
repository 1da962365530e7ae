"""HTTP client for the Supabase-style datastore and object storage APIs."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import requests


logger = logging.getLogger(__name__)


def eq_filter(value: Any) -> str:
    return f"eq.{value}"


def in_filter(values: Sequence[Any]) -> str:
    return "in.({})".format(",".join(str(value) for value in values))


@dataclass
class DatastoreClient:
    """REST client for the ``conversations``/``messages`` tables and storage buckets.

    Row endpoints live under ``/rest/v1/<table>`` and use PostgREST filter
    syntax (``user_id=eq.<id>``); blobs live under ``/storage/v1/object``.
    """

    base_url: str
    api_key: str | None = None
    access_token: str | None = None
    timeout: int = 10

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")

    # Internal helpers -----------------------------------------------------
    def _headers(self, *, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    def _full_url(self, path: str) -> str:
        path = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_payload: Any | None = None,
        data: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> requests.Response:
        url = self._full_url(path)
        try:
            response = requests.request(
                method,
                url,
                params=dict(params or {}),
                json=json_payload,
                data=data,
                headers=self._headers(extra=headers),
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("Request to %s failed", url)
            raise

        if not response.ok:
            message = extract_error_message(response)
            logger.error("Datastore error (%s): %s", response.status_code, message)
            response.raise_for_status()
        return response

    def _rows(self, response: requests.Response) -> list[dict[str, Any]]:
        try:
            payload = response.json()
        except ValueError:
            return []
        if isinstance(payload, Mapping):
            return [dict(payload)]
        if isinstance(payload, list):
            return [dict(row) for row in payload if isinstance(row, Mapping)]
        return []

    # Tables ---------------------------------------------------------------
    def select(
        self,
        table: str,
        *,
        filters: Mapping[str, str] | None = None,
        order: str | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"select": columns, **dict(filters or {})}
        if order:
            params["order"] = order
        response = self._request("get", f"/rest/v1/{table}", params=params)
        return self._rows(response)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a row and return its stored representation."""

        response = self._request(
            "post",
            f"/rest/v1/{table}",
            json_payload=dict(row),
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(response)
        if not rows:
            raise ValueError(f"Insert into {table} returned no row")
        return rows[0]

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Mapping[str, str],
    ) -> None:
        self._request("patch", f"/rest/v1/{table}", params=filters, json_payload=dict(values))

    def delete(self, table: str, *, filters: Mapping[str, str]) -> None:
        self._request("delete", f"/rest/v1/{table}", params=filters)

    # Storage --------------------------------------------------------------
    def upload_object(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str = "3600",
    ) -> str:
        """Upload ``data`` and return the stored object path."""

        response = self._request(
            "post",
            f"/storage/v1/object/{bucket}/{path}",
            data=data,
            headers={
                "Content-Type": content_type,
                "Cache-Control": f"max-age={cache_control}",
                "x-upsert": "false",
            },
        )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        key = payload.get("Key") if isinstance(payload, Mapping) else None
        if isinstance(key, str) and key.startswith(f"{bucket}/"):
            return key[len(bucket) + 1:]
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return self._full_url(f"/storage/v1/object/public/{bucket}/{path}")

    def create_signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        response = self._request(
            "post",
            f"/storage/v1/object/sign/{bucket}/{path}",
            json_payload={"expiresIn": int(expires_in)},
        )
        payload = response.json()
        signed = payload.get("signedURL") if isinstance(payload, Mapping) else None
        if not isinstance(signed, str) or not signed:
            raise ValueError("Storage did not return a signed URL")
        if signed.startswith("http"):
            return signed
        return self._full_url(f"/storage/v1{signed}" if not signed.startswith("/storage/") else signed)

    def remove_objects(self, bucket: str, paths: Sequence[str]) -> None:
        self._request(
            "delete",
            f"/storage/v1/object/{bucket}",
            json_payload={"prefixes": list(paths)},
        )


def extract_error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = response.text
    if isinstance(payload, Mapping):
        detail = payload.get("detail") or payload.get("message") or payload.get("error")
        return str(detail) if detail is not None else json.dumps(payload)
    return str(payload)


__all__ = ["DatastoreClient", "eq_filter", "extract_error_message", "in_filter"]
