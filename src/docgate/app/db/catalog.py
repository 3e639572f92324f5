"""Supabase-backed DocumentCatalog.

Reads document display metadata from the document pipeline's ``documents``
table. docgate never writes to it.
"""

from __future__ import annotations

from typing import Any

from ..sharing.model import DocumentInfo
from .supabase_client import SupabaseClient

_COLUMNS = (
    "id,name,file_type,description,storage_key,url,tags,"
    "uploaded_by,organization_id,department_id"
)


def row_to_document(row: dict[str, Any]) -> DocumentInfo:
    return DocumentInfo(
        id=str(row["id"]),
        name=row.get("name") or "",
        file_type=row.get("file_type") or "",
        description=row.get("description") or "",
        storage_key=row.get("storage_key") or "",
        url=row.get("url") or "",
        tags=tuple(row.get("tags") or ()),
        uploaded_by=row.get("uploaded_by"),
        organization_id=row.get("organization_id"),
        department_id=row.get("department_id"),
    )


class SupabaseDocumentCatalog:
    TABLE = "documents"

    def __init__(self, client: SupabaseClient, *, table: str | None = None) -> None:
        self._client = client
        self._table = table or self.TABLE

    async def resolve(self, document_ids: tuple[str, ...]) -> list[DocumentInfo]:
        if not document_ids:
            return []
        rows = await self._client.select(
            self._table,
            filters={"id": ("in", list(document_ids))},
            columns=_COLUMNS,
        )
        return [row_to_document(r) for r in rows]
