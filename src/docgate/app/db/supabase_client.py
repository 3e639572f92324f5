"""Async Supabase client (service role) over httpx.

The single point of Supabase HTTP interaction for docgate repositories:

  - PostgREST: ``select`` / ``insert`` / ``update`` / ``delete`` / ``rpc``
    against ``{url}/rest/v1``. Non-public schemas (``qr.bundles``) are
    addressed with ``Accept-Profile`` / ``Content-Profile`` headers.
  - Storage: ``upload_object`` to ``{url}/storage/v1/object/{bucket}/{key}``.
  - Edge Functions: ``invoke_function`` on ``{url}/functions/v1/{name}``.

Filters are either a mapping ``{column: value}`` (implies ``eq``) or
``{column: (op, value)}``, e.g. ``{"id": ("in", ids)}``. The ``or`` / ``and``
keys take a list of ``(column, op, value)`` triples and become one grouped
parameter: ``{"or": [("title", "ilike", "*q*"), ...]}``.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Mapping

import httpx

from .errors import SupabaseError, error_class_for

Filters = Mapping[str, Any]


def _split_schema_table(table: str, default_schema: str) -> tuple[str, str]:
    if "." in table:
        schema, name = table.split(".", 1)
        return schema.strip(), name.strip()
    return default_schema, table.strip()


def _encode_filter_value(op: str, value: Any) -> str:
    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        # PostgREST wants strings double-quoted inside in.(...)
        items = [json.dumps(v) if isinstance(v, str) else str(v) for v in value]
        return f"({','.join(items)})"
    if value is None:
        if op != "is":
            raise ValueError(f"{op} does not support None; use op='is' with value=None")
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# Characters PostgREST reserves inside or=(...) / and=(...) groups.
_RESERVED_IN_GROUP = frozenset(',.:()"\\')
_LOGICAL_OPERATORS = ("or", "and")


def as_uuid(value: Any) -> str | None:
    """Canonical UUID string, or None when ``value`` is not a UUID.

    Id columns are ``uuid`` typed, so anything else must never reach an
    ``eq.`` filter: Postgres rejects it (22P02) instead of matching nothing.
    """
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        return None


def _encode_group(conditions: Any) -> str:
    parts = []
    for column, op, value in conditions:
        encoded = _encode_filter_value(str(op), value)
        if op != "in" and any(ch in _RESERVED_IN_GROUP for ch in encoded):
            encoded = '"' + encoded.replace("\\", "\\\\").replace('"', '\\"') + '"'
        parts.append(f"{column}.{op}.{encoded}")
    return f"({','.join(parts)})"


def filters_to_params(filters: Filters | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, condition in (filters or {}).items():
        if column in _LOGICAL_OPERATORS:
            params[column] = _encode_group(condition)
            continue
        if isinstance(condition, tuple) and len(condition) == 2:
            op, value = condition
        else:
            op, value = "eq", condition
        params[str(column)] = f"{op}.{_encode_filter_value(str(op), value)}"
    return params


class SupabaseClient:
    """Minimal async Supabase client with typed results."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        default_schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._default_schema = default_schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or httpx.AsyncClient()

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    @property
    def base_storage_url(self) -> str:
        return f"{self._supabase_url}/storage/v1"

    def public_object_url(self, bucket: str, key: str) -> str:
        return f"{self.base_storage_url}/object/public/{bucket}/{key}"

    def _auth_headers(self) -> dict[str, str]:
        # Never log these headers.
        return {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }

    @staticmethod
    def _schema_headers(schema: str, method: str) -> dict[str, str]:
        headers = {"Accept-Profile": schema}
        if method in ("POST", "PATCH", "PUT", "DELETE"):
            headers["Content-Profile"] = schema
        return headers

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        message = resp.text
        code = details = hint = None
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("error") or message
                code = payload.get("code")
                details = payload.get("details")
                hint = payload.get("hint")
        except ValueError:
            pass

        raise error_class_for(resp.status_code)(
            status_code=resp.status_code,
            message=message,
            code=None if code is None else str(code),
            details=details,
            hint=hint,
        )

    async def _rest(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        headers = {**self._auth_headers(), **self._schema_headers(schema, method)}
        if prefer:
            headers["Prefer"] = prefer

        resp = await self._client.request(
            method,
            f"{self.base_rest_url}/{table_name}",
            params=params,
            json=json_body,
            headers=headers,
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        payload = resp.json()
        if not isinstance(payload, list):
            raise SupabaseError(
                status_code=500, message=f"expected list response from {method} {table}",
            )
        return payload

    # ── PostgREST ────────────────────────────────────────────────────

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        offset: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if offset:
            params["offset"] = str(int(offset))
        if order:
            params["order"] = order
        return await self._rest("GET", table, params=params)

    async def insert(self, table: str, data: Mapping[str, Any]) -> list[dict[str, Any]]:
        return await self._rest(
            "POST", table, json_body=dict(data), prefer="return=representation",
        )

    async def update(
        self, table: str, filters: Filters, data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update requires at least one filter")
        return await self._rest(
            "PATCH",
            table,
            params=filters_to_params(filters),
            json_body=dict(data),
            prefer="return=representation",
        )

    async def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("delete requires at least one filter")
        return await self._rest(
            "DELETE", table, params=filters_to_params(filters), prefer="return=representation",
        )

    async def rpc(
        self,
        function_name: str,
        params: Mapping[str, Any] | None = None,
        *,
        schema: str | None = None,
    ) -> Any:
        headers = {
            **self._auth_headers(),
            **self._schema_headers(schema or self._default_schema, "POST"),
        }
        resp = await self._client.request(
            "POST",
            f"{self.base_rest_url}/rpc/{function_name}",
            json=dict(params or {}),
            headers=headers,
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return resp.json()

    # ── Storage / Functions ──────────────────────────────────────────

    async def upload_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = True,
    ) -> None:
        headers = {
            **self._auth_headers(),
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }
        resp = await self._client.request(
            "POST",
            f"{self.base_storage_url}/object/{bucket}/{key}",
            content=data,
            headers=headers,
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)

    async def invoke_function(self, name: str, payload: Mapping[str, Any]) -> None:
        resp = await self._client.request(
            "POST",
            f"{self._supabase_url}/functions/v1/{name}",
            json=dict(payload),
            headers=self._auth_headers(),
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
