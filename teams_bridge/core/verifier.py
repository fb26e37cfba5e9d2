"""Prüft die Bearer-Tokens, mit denen der Bot Framework Connector die
Webhooks signiert.

Die Audience ist nicht fest konfiguriert: jeder Tenant kann eine eigene
Bot-Identität haben. Deshalb wird die Audience zuerst ungeprüft gelesen, nur um
die passende bekannte Identität auszuwählen. Vertraut wird dem Token erst nach
der vollständigen Signatur-, Issuer- und Audience-Prüfung gegen genau diese
Identität.
"""
import logging
from typing import Optional

import jwt

from teams_bridge.core.directory import TenantDirectory
from teams_bridge.core.errors import AuthError
from teams_bridge.core.keys import SigningKeyCache
from teams_bridge.core.models import TenantCredential

logger = logging.getLogger(__name__)

BOTFRAMEWORK_ISSUER = "https://api.botframework.com"
# Bot Framework empfiehlt 5 Minuten Toleranz für Uhrenabweichung
CLOCK_SKEW_SECONDS = 300


def extract_bearer(auth_header: Optional[str]) -> Optional[str]:
    """Liefert das Token aus einem ``Authorization: Bearer ...`` Header."""
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class TokenVerifier:
    def __init__(
        self,
        key_cache: SigningKeyCache,
        directory: TenantDirectory,
        global_credential: Optional[TenantCredential] = None,
    ) -> None:
        self.key_cache = key_cache
        self.directory = directory
        self.global_credential = global_credential

    async def _resolve_audience(self, bot_id: str) -> Optional[TenantCredential]:
        if self.global_credential and bot_id == self.global_credential.bot_client_id:
            return self.global_credential
        return await self.directory.resolve_by_bot_identity(bot_id)

    async def verify(self, token: str) -> TenantCredential:
        """Verifiziert das Token und liefert die Credentials der adressierten Bot-Identität."""
        # 1. Audience ungeprüft lesen (nur zur Auswahl der Identität)
        try:
            unverified = jwt.decode(token, options={"verify_signature": False})
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise AuthError(f"malformed token: {exc}") from exc

        bot_id = unverified.get("aud")
        if not isinstance(bot_id, str) or not bot_id:
            raise AuthError("token has no usable audience")
        kid = header.get("kid")
        if not kid:
            raise AuthError("token header has no kid")

        # 2. Nur bekannte Identitäten zulassen
        credential = await self._resolve_audience(bot_id)
        if credential is None:
            raise AuthError(f"unknown bot identity: {bot_id}")

        # 3. Vollständige Prüfung gegen genau diese Identität
        signing_key = await self.key_cache.get_signing_key(kid)
        try:
            jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=bot_id,
                issuer=BOTFRAMEWORK_ISSUER,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "iss", "aud"]},
            )
        except jwt.InvalidTokenError as exc:
            raise AuthError(f"token verification failed: {exc}") from exc

        logger.debug(f"Verified inbound token for bot {bot_id}")
        return credential
