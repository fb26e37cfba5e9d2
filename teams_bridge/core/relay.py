"""Zweiphasiger Versand einer Antwort an Teams.

Phase 1 schickt sofort einen Platzhalter, Phase 2 ersetzt genau diesen
Platzhalter (PUT) durch die fertige Antwort. Liefert Teams in Phase 1 keine
Activity-ID, wird die Antwort stattdessen einmalig neu gepostet.

Zustände::

    IDLE -> PLACEHOLDER_SENT -> PATCHED        (Antwort ersetzt den Platzhalter)
    IDLE -> PLACEHOLDER_SENT -> REPOSTED       (keine ID, Antwort neu gepostet)
    IDLE -> PLACEHOLDER_SENT -> PATCH_FAILED
    IDLE -> SEND_FAILED
    IDLE -> SENT                   (Einzelnachricht ohne Platzhalter)

Es gibt keine Wiederholungsversuche: ein zustandsloser Relay, der blind
wiederholt, erzeugt doppelte Nachrichten beim Nutzer.
"""
import enum
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from botbuilder.schema import Activity

from teams_bridge.core.errors import RelayError
from teams_bridge.core.models import InboundEvent

logger = logging.getLogger(__name__)


class RelayState(str, enum.Enum):
    IDLE = "idle"
    PLACEHOLDER_SENT = "placeholder_sent"
    PATCHED = "patched"
    REPOSTED = "reposted"
    PATCH_FAILED = "patch_failed"
    SEND_FAILED = "send_failed"
    SENT = "sent"


class MessageRelay:
    """Gilt für genau ein eingehendes Event und wird danach verworfen."""

    def __init__(self, client: httpx.AsyncClient, event: InboundEvent, access_token: str) -> None:
        if not event.actionable:
            raise RelayError("event has no serviceUrl or conversation id")
        self.client = client
        self.event = event
        self.access_token = access_token
        self.state = RelayState.IDLE
        # Activity-ID des Platzhalters (PendingReply)
        self.pending_reply_id: Optional[str] = None

    @property
    def activities_url(self) -> str:
        base = self.event.service_endpoint.rstrip("/")
        conversation = quote(self.event.conversation_id, safe="")
        return f"{base}/v3/conversations/{conversation}/activities"

    def _body(self, activity: Activity) -> Dict[str, Any]:
        activity.reply_to_id = self.event.reply_to_id or self.event.id
        return activity.serialize()

    async def _send(self, method: str, url: str, body: Dict[str, Any]) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                url,
                json=body,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as exc:
            raise RelayError(f"{method} {url} failed: {exc}") from exc
        if not response.is_success:
            raise RelayError(f"{method} {url} returned {response.status_code}")
        return response

    async def send_placeholder(self, activity: Activity) -> Optional[str]:
        """Phase 1. Liefert die Activity-ID des Platzhalters (kann fehlen)."""
        if self.state != RelayState.IDLE:
            raise RelayError(f"placeholder already handled (state {self.state.value})")

        try:
            response = await self._send("POST", self.activities_url, self._body(activity))
        except RelayError:
            self.state = RelayState.SEND_FAILED
            raise

        try:
            data = response.json()
        except ValueError:
            data = None
        self.pending_reply_id = data.get("id") if isinstance(data, dict) else None
        self.state = RelayState.PLACEHOLDER_SENT
        if not self.pending_reply_id:
            logger.info(f"Placeholder in {self.event.conversation_id} returned no activity id")
        return self.pending_reply_id

    async def deliver(self, activity: Activity) -> RelayState:
        """Phase 2: Platzhalter ersetzen oder, ohne ID, die Antwort neu posten."""
        if self.state != RelayState.PLACEHOLDER_SENT:
            raise RelayError(f"cannot deliver in state {self.state.value}")

        try:
            if self.pending_reply_id:
                await self._patch(activity)
            else:
                await self._repost(activity)
        except RelayError:
            self.state = RelayState.PATCH_FAILED
            raise
        finally:
            self.pending_reply_id = None
        return self.state

    async def _patch(self, activity: Activity) -> None:
        activity.id = self.pending_reply_id
        url = f"{self.activities_url}/{quote(self.pending_reply_id, safe='')}"
        await self._send("PUT", url, self._body(activity))
        self.state = RelayState.PATCHED

    async def _repost(self, activity: Activity) -> None:
        await self._send("POST", self.activities_url, self._body(activity))
        self.state = RelayState.REPOSTED

    async def send_once(self, activity: Activity) -> None:
        """Einzelne Nachricht ohne Platzhalter (z.B. Hinweis "nicht eingerichtet")."""
        if self.state != RelayState.IDLE:
            raise RelayError(f"relay already used (state {self.state.value})")
        try:
            await self._send("POST", self.activities_url, self._body(activity))
        except RelayError:
            self.state = RelayState.SEND_FAILED
            raise
        self.state = RelayState.SENT
