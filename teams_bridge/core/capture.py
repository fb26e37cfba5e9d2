"""Leitet Nutzerfragen an den Capture-Endpunkt weiter, damit Menschen dort
Antworten ergänzen können. Läuft als Hintergrund-Task und darf den Teams-Flow
nie beeinflussen."""
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from teams_bridge.core.models import InboundEvent

logger = logging.getLogger(__name__)


class HumanAnswerCapture:
    def __init__(self, client: httpx.AsyncClient, capture_url: Optional[str], anon_api_key: str):
        self.client = client
        self.capture_url = capture_url
        self.anon_api_key = anon_api_key

    @property
    def enabled(self) -> bool:
        return bool(self.capture_url)

    async def capture(self, internal_tenant_id: str, event: InboundEvent) -> None:
        if not self.enabled or not event.text or not event.conversation_id or not event.id:
            return

        payload = {
            "tenant_id": internal_tenant_id,
            "source_type": "teams",
            "teams_tenant_id": event.external_org_id,
            "thread_messages": [
                {
                    "user_id": event.sender_id or "unknown",
                    "text": event.text,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "is_bot": False,
                }
            ],
            "source_reference": {
                "conversation_id": event.conversation_id,
                "activity_id": event.id,
            },
        }
        try:
            response = await self.client.post(self.capture_url, json=payload, headers={"apikey": self.anon_api_key})
        except httpx.HTTPError as exc:
            logger.warning(f"Human answer capture failed for {event.id}: {exc}")
            return
        if not response.is_success:
            logger.warning(f"Human answer capture for {event.id} returned {response.status_code}")
