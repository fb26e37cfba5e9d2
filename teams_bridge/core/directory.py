"""Client für den Tenant-Lookup: AAD-Tenant -> interner Tenant und
Bot-App-ID -> Tenant inkl. Bot-Credentials."""
import logging
from typing import Any, Dict, Optional

import httpx

from teams_bridge.core.errors import DirectoryError
from teams_bridge.core.models import TenantCredential

logger = logging.getLogger(__name__)


class TenantDirectory:
    """Beide Lookups gehen per POST an denselben Endpunkt. Fehler werden als
    "nicht gefunden" gemeldet; der Aufrufer entscheidet, ob das fatal ist."""

    def __init__(self, client: httpx.AsyncClient, lookup_url: str, anon_api_key: str, internal_secret: str):
        self.client = client
        self.lookup_url = lookup_url
        self.anon_api_key = anon_api_key
        self.internal_secret = internal_secret

    async def _lookup(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post(
                self.lookup_url,
                json=payload,
                headers={
                    "apikey": self.anon_api_key,
                    "x-internal-token": self.internal_secret,
                },
            )
        except httpx.HTTPError as exc:
            raise DirectoryError(f"lookup request failed: {exc}") from exc

        if not response.is_success:
            raise DirectoryError(f"lookup returned {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise DirectoryError("lookup returned invalid JSON") from exc
        if not isinstance(data, dict) or not data.get("tenant_id"):
            raise DirectoryError("lookup returned no tenant_id")
        return data

    async def resolve_by_bot_identity(self, bot_id: str) -> Optional[TenantCredential]:
        """Löst eine Bot-App-ID (JWT-Audience) zu Tenant und Credentials auf."""
        try:
            data = await self._lookup({"bot_app_id": bot_id})
        except DirectoryError as exc:
            logger.warning(f"Bot identity {bot_id} not resolved: {exc}")
            return None

        return TenantCredential(
            internal_tenant_id=data["tenant_id"],
            bot_client_id=data.get("bot_app_id") or bot_id,
            bot_client_secret=data.get("bot_app_password"),
        )

    async def resolve_by_external_org(self, org_id: str, auto_provision: bool = True) -> Optional[str]:
        """Löst einen AAD-Tenant zur internen Tenant-ID auf.

        Mit ``auto_provision`` legt das Directory beim ersten Kontakt ein Mapping
        an; wiederholte Aufrufe liefern dieselbe Tenant-ID.
        """
        try:
            data = await self._lookup({"teams_tenant_id": org_id, "auto_provision": auto_provision})
        except DirectoryError as exc:
            logger.warning(f"External org {org_id} not resolved: {exc}")
            return None
        return str(data["tenant_id"])
