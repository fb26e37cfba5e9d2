"""Holt per Client-Credentials-Flow ein Access-Token für die Bot Connector API."""
import logging

import httpx

from teams_bridge.core.errors import TokenError
from teams_bridge.core.models import TenantCredential

logger = logging.getLogger(__name__)

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{authority}/oauth2/v2.0/token"
BOTFRAMEWORK_SCOPE = "https://api.botframework.com/.default"
MULTI_TENANT_AUTHORITY = "botframework.com"


class CredentialMinter:
    """Tokens werden nicht gecacht; jedes Relay-Event holt ein frisches Token.

    Welche Authority das Token ausstellt, ist eine Konfigurationsentscheidung:
    ``multi_tenant`` für eine globale App-Registrierung, ``single_tenant``, wenn
    die Bot-Registrierung im AAD-Tenant der Kundenorganisation liegt.
    """

    def __init__(self, client: httpx.AsyncClient, authority_mode: str = "single_tenant"):
        self.client = client
        self.authority_mode = authority_mode

    def authority_for(self, external_org_id: str) -> str:
        if self.authority_mode == "multi_tenant":
            return MULTI_TENANT_AUTHORITY
        return external_org_id

    async def mint(self, credential: TenantCredential, external_org_id: str) -> str:
        if not credential.bot_client_secret:
            raise TokenError(f"no client secret for bot {credential.bot_client_id}")

        url = TOKEN_URL_TEMPLATE.format(authority=self.authority_for(external_org_id))
        try:
            response = await self.client.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": credential.bot_client_id,
                    "client_secret": credential.bot_client_secret,
                    "scope": BOTFRAMEWORK_SCOPE,
                },
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TokenError(f"token request failed: {exc}") from exc

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            error = data.get("error_description") or data.get("error") if isinstance(data, dict) else None
            raise TokenError(f"no access token for bot {credential.bot_client_id}: {error or response.status_code}")
        return access_token
