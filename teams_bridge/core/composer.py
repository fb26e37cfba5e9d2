"""Baut die Teams-Nachrichten: Platzhalter, Antwort als Adaptive Card mit
Feedback-Buttons sowie Fehler- und Hinweistexte."""
import copy
import math
from typing import Any, Dict, List

from botbuilder.core import CardFactory, MessageFactory
from botbuilder.schema import Activity

from teams_bridge.core.models import AnswerResult, Source

MAX_SOURCES = 8

PLACEHOLDER_TEXT = "⏳ Einen Moment, ich suche die Antwort…"
FAILURE_TEXT = "⚠️ Die Antwort konnte gerade nicht erstellt werden. Bitte versuchen Sie es später erneut."
UNCONFIGURED_TEXT = "ℹ️ Dieser Bot ist für Ihre Organisation noch nicht eingerichtet."
NO_ANSWER_TEXT = "No answer found."

# Basis-Card; Body und Actions werden pro Antwort befüllt.
BASE_ADAPTIVE_CARD: Dict[str, Any] = {
    "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
    "type": "AdaptiveCard",
    "version": "1.4",
    "body": [],
    "actions": [],
}


def _facts(answer: AnswerResult) -> List[Dict[str, str]]:
    facts = []
    if answer.confidence is not None and math.isfinite(answer.confidence):
        facts.append({"title": "Confidence", "value": f"{round(answer.confidence * 100)}%"})
    if answer.reviewed:
        facts.append({"title": "Reviewed", "value": "Yes"})
    return facts


def _source_line(source: Source) -> str:
    title = source.title or "Source"
    line = f"• [{title}]({source.url})" if source.url else f"• {title}"
    details = [d for d in (source.platform_label, source.updated_at) if d]
    if details:
        line += f" ({', '.join(details)})"
    return line


def _feedback_actions(tenant_id: str, qa_log_id: str) -> List[Dict[str, Any]]:
    return [
        {
            "type": "Action.Submit",
            "title": title,
            "data": {"action": "feedback", "feedback": rating, "tenant_id": tenant_id, "qa_log_id": qa_log_id},
        }
        for title, rating in (("👍 Helpful", "up"), ("👎 Not helpful", "down"))
    ]


def build_answer_card(answer: AnswerResult, tenant_id: str) -> Dict[str, Any]:
    """Adaptive Card mit Antworttext, Fakten, Quellen und (falls möglich) Feedback."""
    card = copy.deepcopy(BASE_ADAPTIVE_CARD)
    card["body"].append({"type": "TextBlock", "text": answer.answer_text or NO_ANSWER_TEXT, "wrap": True})

    facts = _facts(answer)
    if facts:
        card["body"].append({"type": "FactSet", "facts": facts})

    if answer.sources:
        items = [{"type": "TextBlock", "text": "Sources", "weight": "Bolder", "spacing": "Medium"}]
        items.extend(
            {"type": "TextBlock", "text": _source_line(source), "wrap": True, "spacing": "None"}
            for source in answer.sources[:MAX_SOURCES]
        )
        card["body"].append({"type": "Container", "items": items})

    if answer.correlation_id:
        card["actions"] = _feedback_actions(tenant_id, answer.correlation_id)
    return card


def answer_activity(answer: AnswerResult, tenant_id: str) -> Activity:
    return MessageFactory.attachment(CardFactory.adaptive_card(build_answer_card(answer, tenant_id)))


def placeholder_activity() -> Activity:
    return MessageFactory.text(PLACEHOLDER_TEXT)


def failure_activity() -> Activity:
    return MessageFactory.text(FAILURE_TEXT)


def unconfigured_activity() -> Activity:
    return MessageFactory.text(UNCONFIGURED_TEXT)
