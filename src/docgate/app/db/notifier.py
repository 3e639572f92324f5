"""Passcode delivery through a Supabase Edge Function.

The function owns the email template and provider; docgate only hands it
the recipient, the bundle title and link, and the passcode.
"""

from __future__ import annotations

from ..sharing.model import Bundle
from .supabase_client import SupabaseClient


class SupabaseFunctionNotifier:
    FUNCTION = "send-qr-passcode"

    def __init__(self, client: SupabaseClient, *, function_name: str | None = None) -> None:
        self._client = client
        self._function = function_name or self.FUNCTION

    async def send_passcode(self, email: str, bundle: Bundle, passcode: str) -> None:
        await self._client.invoke_function(
            self._function,
            {
                "email": email,
                "bundle_title": bundle.title,
                "public_id": bundle.public_id,
                "passcode": passcode,
            },
        )
