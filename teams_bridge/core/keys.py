"""Cache für die Signaturschlüssel des Bot Framework.

Die Schlüssel werden beim ersten Token geladen (OpenID-Metadaten, danach das
dort referenzierte JWKS) und bleiben für die Lebensdauer des Prozesses gültig.
"""
import asyncio
import logging
from typing import Optional

import httpx
import jwt
from jwt.exceptions import PyJWKError, PyJWKSetError

from teams_bridge.core.errors import AuthError

logger = logging.getLogger(__name__)


class SigningKeyCache:
    """Lädt das JWKS genau einmal; parallele Erst-Requests warten auf denselben Abruf."""

    def __init__(self, client: httpx.AsyncClient, openid_config_url: str) -> None:
        self.client = client
        self.openid_config_url = openid_config_url
        self._key_set: Optional[jwt.PyJWKSet] = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._key_set is not None

    async def get_key_set(self) -> jwt.PyJWKSet:
        if self._key_set is not None:
            return self._key_set

        async with self._lock:
            if self._key_set is None:
                self._key_set = await self._fetch()
        return self._key_set

    async def get_signing_key(self, kid: str) -> jwt.PyJWK:
        key_set = await self.get_key_set()
        try:
            return key_set[kid]
        except KeyError as exc:
            raise AuthError(f"unknown signing key: {kid}") from exc

    async def _fetch(self) -> jwt.PyJWKSet:
        try:
            meta_response = await self.client.get(self.openid_config_url)
            meta_response.raise_for_status()
            jwks_uri = meta_response.json()["jwks_uri"]

            jwks_response = await self.client.get(jwks_uri)
            jwks_response.raise_for_status()
            key_set = jwt.PyJWKSet.from_dict(jwks_response.json())
        except (httpx.HTTPError, ValueError, KeyError, PyJWKError, PyJWKSetError) as exc:
            # Nichts cachen, damit der nächste Request es erneut versucht.
            logger.error(f"Failed to load Bot Framework signing keys: {exc}")
            raise AuthError("signing keys unavailable") from exc

        logger.info(f"Loaded {len(key_set.keys)} Bot Framework signing keys")
        return key_set
