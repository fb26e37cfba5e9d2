"""Client für das RAG-Backend: Fragen stellen und Feedback weiterleiten."""
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from teams_bridge.core.errors import AnswerError
from teams_bridge.core.models import AnswerResult

logger = logging.getLogger(__name__)

SOURCE_NAME = "teams"


class AnswerService:
    """Der Tenant wird nur als Routing-Header mitgegeben. Zu diesem Zeitpunkt
    ist er bereits über Token und Directory festgestellt."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        query_url: str,
        feedback_url: str,
        anon_api_key: str,
        internal_secret: str,
    ) -> None:
        self.client = client
        self.query_url = query_url
        self.feedback_url = feedback_url
        self.anon_api_key = anon_api_key
        self.internal_secret = internal_secret

    async def ask(self, internal_tenant_id: str, question: str) -> AnswerResult:
        question = question.strip()
        if not question:
            raise AnswerError("empty question")

        logger.info(f"RAG request [tenant {internal_tenant_id}]: {len(question)} chars")
        try:
            response = await self.client.post(
                self.query_url,
                json={"question": question, "source": SOURCE_NAME},
                headers={"apikey": self.anon_api_key, "x-tenant-id": internal_tenant_id},
            )
        except httpx.HTTPError as exc:
            raise AnswerError(f"RAG request failed: {exc}") from exc

        if not response.is_success:
            raise AnswerError(f"RAG returned {response.status_code}")
        try:
            return AnswerResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise AnswerError(f"RAG returned an unusable body: {exc}") from exc

    async def submit_feedback(
        self,
        internal_tenant_id: str,
        correlation_id: str,
        rating: str,
        sender_id: Optional[str] = None,
    ) -> None:
        """Best effort: Fehler werden nur geloggt."""
        payload: Dict[str, Any] = {
            "qa_log_id": correlation_id,
            "feedback": rating,
            "tenant_id": internal_tenant_id,
            "source": SOURCE_NAME,
        }
        if sender_id:
            payload["teams_user_id"] = sender_id

        try:
            response = await self.client.post(
                self.feedback_url,
                json=payload,
                headers={"apikey": self.anon_api_key, "x-internal-token": self.internal_secret},
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Feedback for {correlation_id} not delivered: {exc}")
            return

        if not response.is_success:
            logger.warning(f"Feedback for {correlation_id} rejected with {response.status_code}")
            return
        logger.info(f"Feedback '{rating}' recorded for {correlation_id}")
