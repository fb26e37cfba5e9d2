"""Datenmodelle der Teams Bridge: eingehende Events, Tenant-Credentials und
Antworten des RAG-Backends. Keines dieser Objekte überlebt einen Request."""
from typing import Any, Dict, List, Literal, Optional

from botbuilder.schema import Activity, ActivityTypes
from pydantic import BaseModel, ConfigDict, Field, field_validator

EventKind = Literal["message", "interactive-action", "other"]


def _first_non_empty(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


class InboundEvent(BaseModel):
    """Normalisierte Sicht auf eine eingehende Teams-Activity."""

    kind: EventKind
    id: Optional[str] = None
    text: Optional[str] = None
    interaction_payload: Optional[Dict[str, Any]] = None
    reply_to_id: Optional[str] = None
    service_endpoint: Optional[str] = None
    conversation_id: Optional[str] = None
    external_org_id: Optional[str] = None
    sender_id: Optional[str] = None

    @classmethod
    def from_activity(cls, activity: Activity) -> "InboundEvent":
        conversation = activity.conversation
        channel_data = activity.channel_data if isinstance(activity.channel_data, dict) else {}
        tenant = channel_data.get("tenant") if isinstance(channel_data.get("tenant"), dict) else {}

        value = activity.value if isinstance(activity.value, dict) else None
        if activity.type in (ActivityTypes.message, ActivityTypes.invoke) and value is not None:
            kind = "interactive-action"
        elif activity.type == ActivityTypes.message:
            kind = "message"
        else:
            kind = "other"

        return cls(
            kind=kind,
            id=activity.id,
            text=activity.text,
            interaction_payload=value,
            reply_to_id=activity.reply_to_id,
            service_endpoint=activity.service_url,
            conversation_id=conversation.id if conversation else None,
            external_org_id=_first_non_empty(
                tenant.get("id"),
                conversation.tenant_id if conversation else None,
            ),
            sender_id=activity.from_property.id if activity.from_property else None,
        )

    @property
    def actionable(self) -> bool:
        """Ohne serviceUrl und Conversation-ID kann nicht geantwortet werden."""
        return bool(self.service_endpoint and self.conversation_id)

    @property
    def question(self) -> str:
        return (self.text or "").strip()


class TenantCredential(BaseModel):
    """Bot-Identität eines Tenants. Wird pro Request frisch aufgelöst."""

    internal_tenant_id: Optional[str] = None
    bot_client_id: str
    bot_client_secret: Optional[str] = None


class Source(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    url: Optional[str] = None
    platform_label: Optional[str] = Field(None, alias="platform")
    updated_at: Optional[str] = None


class AnswerResult(BaseModel):
    """Antwort des RAG-Backends (Wire-Namen als Aliase)."""

    model_config = ConfigDict(populate_by_name=True)

    answer_text: Optional[str] = Field(None, alias="answer")
    confidence: Optional[float] = None
    reviewed: Optional[bool] = None
    sources: List[Source] = Field(default_factory=list)
    correlation_id: Optional[str] = Field(None, alias="qa_log_id")

    @field_validator("sources", mode="before")
    @classmethod
    def _null_sources(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("correlation_id", mode="before")
    @classmethod
    def _stringify_log_id(cls, value: Any) -> Any:
        # qa_log_id kommt je nach Backend als Zahl
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class FeedbackAction(BaseModel):
    """Klick auf einen Feedback-Button der Antwort-Card."""

    correlation_id: str
    rating: Literal["up", "down"]

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> Optional["FeedbackAction"]:
        """Liefert None, wenn der Payload keine vollständige Feedback-Aktion ist."""
        if not payload or payload.get("action") != "feedback":
            return None
        rating = payload.get("feedback") or payload.get("rating")
        correlation_id = payload.get("qa_log_id")
        if rating not in ("up", "down") or not correlation_id:
            return None
        return cls(correlation_id=str(correlation_id), rating=rating)
