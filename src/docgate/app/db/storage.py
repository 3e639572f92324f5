"""Supabase Storage implementation of ObjectStorage.

QR images are uploaded (upsert) to a public bucket; the returned URL is the
bucket's public object URL.
"""

from __future__ import annotations

from .supabase_client import SupabaseClient


class SupabaseObjectStorage:
    def __init__(self, client: SupabaseClient, *, bucket: str) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self._client = client
        self._bucket = bucket

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        await self._client.upload_object(self._bucket, key, data, content_type=content_type)
        return self._client.public_object_url(self._bucket, key)
