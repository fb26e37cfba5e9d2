"""Teams-Webhook: nimmt Bot Framework Activities entgegen und orchestriert
Authentifizierung, Tenant-Auflösung, RAG-Anfrage und Antwortversand.

Nach außen antwortet der Endpunkt fast immer mit 200 ("empfangen", nicht
"erfolgreich"). Fehlerstatus würden Teams zum erneuten Zustellen bewegen und
damit doppelte Platzhalter erzeugen. Ausnahmen: 401 bei Authentifizierungs-
fehlern, 400 bei strukturell ungültigen Events.
"""
import logging
from typing import Any, Awaitable, Callable

from botbuilder.schema import Activity
from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import PlainTextResponse
from msrest.exceptions import DeserializationError

from teams_bridge.core import composer
from teams_bridge.core.errors import AnswerError, AuthError, RelayError, TokenError
from teams_bridge.core.models import FeedbackAction, InboundEvent, TenantCredential
from teams_bridge.core.relay import MessageRelay
from teams_bridge.core.verifier import extract_bearer

router = APIRouter(prefix="/teams", tags=["Teams Bridge"])
logger = logging.getLogger(__name__)


def _ack(text: str = "ok") -> PlainTextResponse:
    return PlainTextResponse(text, status_code=200)


async def _detached(description: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
    """Rahmen für Fire-and-forget Tasks: Fehler werden nur geloggt."""
    try:
        await func(*args)
    except Exception as e:
        logger.error(f"Background task '{description}' failed: {e}")


async def _send_unconfigured_notice(state, credential: TenantCredential, event: InboundEvent) -> None:
    try:
        token = await state.minter.mint(credential, event.external_org_id)
        await MessageRelay(state.http_client, event, token).send_once(composer.unconfigured_activity())
    except (TokenError, RelayError) as e:
        logger.warning(f"Could not send 'not configured' notice to {event.conversation_id}: {e}")


async def _answer(state, credential: TenantCredential, tenant_id: str, event: InboundEvent) -> None:
    """Mint -> Platzhalter -> RAG -> Antwort ersetzt Platzhalter."""
    try:
        token = await state.minter.mint(credential, event.external_org_id)
    except TokenError as e:
        logger.error(f"Token mint failed for tenant {tenant_id}: {e}")
        return

    relay = MessageRelay(state.http_client, event, token)
    try:
        await relay.send_placeholder(composer.placeholder_activity())
    except RelayError as e:
        logger.error(f"Placeholder send failed for {event.id}: {e}")
        return

    # Ab hier muss die Auslieferung in jedem Fall versucht werden.
    try:
        answer = await state.answers.ask(tenant_id, event.question)
        reply = composer.answer_activity(answer, tenant_id)
    except AnswerError as e:
        logger.error(f"RAG failed for tenant {tenant_id}: {e}")
        reply = composer.failure_activity()
    except Exception as e:
        logger.exception(f"Building the reply for {event.id} failed: {e}")
        reply = composer.failure_activity()

    try:
        outcome = await relay.deliver(reply)
    except RelayError as e:
        logger.error(f"Reply delivery failed for {event.id}: {e}")
        return
    except Exception as e:
        logger.exception(f"Unexpected error delivering reply for {event.id}: {e}")
        return
    logger.info(f"Reply for {event.id} delivered ({outcome.value})")


@router.post("")
async def teams_webhook(request: Request, background_tasks: BackgroundTasks):
    """Endpunkt für Activities vom Azure Bot Service."""
    state = request.app.state

    # 1. Body parsen; Parserfehler werden nicht nach außen gemeldet
    try:
        body = await request.json()
    except ValueError:
        logger.info("Ignoring request with unparsable body")
        return _ack()

    # 2. Ohne Bearer-Token nichts verarbeiten
    token = extract_bearer(request.headers.get("Authorization"))
    if token is None:
        return _ack()
    if not isinstance(body, dict):
        return PlainTextResponse("bad request", status_code=400)

    # 3. Authentifizieren
    try:
        credential = await state.verifier.verify(token)
    except AuthError as e:
        logger.warning(f"Rejected Teams request: {e}")
        return PlainTextResponse("unauthorized", status_code=401)

    try:
        event = InboundEvent.from_activity(Activity().deserialize(body))
    except DeserializationError as e:
        logger.info(f"Ignoring activity that does not deserialize: {e}")
        return _ack()

    # 4. Ohne Organisation kein Tenant
    if not event.external_org_id:
        return _ack()

    # 5. Tenant auflösen (legt beim ersten Kontakt ein Mapping an)
    tenant_id = await state.directory.resolve_by_external_org(event.external_org_id, auto_provision=True)
    if not tenant_id:
        logger.info(f"No tenant configured for org {event.external_org_id}")
        if state.settings.notify_unconfigured_tenant and event.actionable and event.question:
            await _send_unconfigured_notice(state, credential, event)
        return _ack("no tenant")

    if credential.internal_tenant_id and credential.internal_tenant_id != tenant_id:
        logger.warning(
            f"Bot {credential.bot_client_id} belongs to tenant {credential.internal_tenant_id}, "
            f"but org {event.external_org_id} maps to {tenant_id}; dropping event"
        )
        return _ack()

    # 6. Feedback-Klick
    if event.kind == "interactive-action":
        feedback = FeedbackAction.from_payload(event.interaction_payload)
        if feedback is not None:
            background_tasks.add_task(
                _detached,
                "feedback",
                state.answers.submit_feedback,
                tenant_id,
                feedback.correlation_id,
                feedback.rating,
                event.sender_id,
            )
            return _ack()

    # 7. Nur beantwortbare Textnachrichten; ohne serviceUrl/Conversation kein Versand
    if not event.actionable:
        return _ack()
    if not event.question:
        return _ack("ignored")

    # 8. Antworten
    if state.capture.enabled:
        background_tasks.add_task(_detached, "human answer capture", state.capture.capture, tenant_id, event)
    await _answer(state, credential, tenant_id, event)
    return _ack()
