"""FastAPI-Einstiegspunkt der Teams Bridge."""
import logging

import httpx
from fastapi import FastAPI

from teams_bridge.core.answers import AnswerService
from teams_bridge.core.capture import HumanAnswerCapture
from teams_bridge.core.config import Settings, load_settings
from teams_bridge.core.directory import TenantDirectory
from teams_bridge.core.keys import SigningKeyCache
from teams_bridge.core.logging_setup import setup_logging
from teams_bridge.core.minter import CredentialMinter
from teams_bridge.core.models import TenantCredential
from teams_bridge.core.verifier import TokenVerifier

from teams_bridge.routers import teams as teams_router

logger = logging.getLogger(__name__)

# Initialisierung der App
app = FastAPI(
    title="Teams Bridge",
    version="1.0.0",
    description="Relays Microsoft Teams messages to the RAG backend and back.",
)


def init_services(target: FastAPI, settings: Settings, client: httpx.AsyncClient) -> None:
    """Verdrahtet alle Services und legt sie im App State ab."""
    target.state.settings = settings
    target.state.http_client = client

    target.state.directory = TenantDirectory(
        client,
        settings.tenant_lookup_url,
        settings.anon_api_key,
        settings.internal_lookup_secret,
    )

    global_credential = None
    if settings.global_bot_app_id:
        global_credential = TenantCredential(
            bot_client_id=settings.global_bot_app_id,
            bot_client_secret=settings.global_bot_app_password,
        )
    target.state.verifier = TokenVerifier(
        SigningKeyCache(client, settings.openid_config_url),
        target.state.directory,
        global_credential,
    )

    target.state.minter = CredentialMinter(client, settings.bot_authority_mode)
    target.state.answers = AnswerService(
        client,
        settings.rag_query_url,
        settings.resolved_feedback_url,
        settings.anon_api_key,
        settings.internal_lookup_secret,
    )
    target.state.capture = HumanAnswerCapture(client, settings.capture_url, settings.anon_api_key)


@app.on_event("startup")
async def startup_event() -> None:
    """Lädt die Konfiguration (Abbruch, wenn Pflichtwerte fehlen) und
    initialisiert den gemeinsamen HTTP-Client samt Services."""
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)

    client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    init_services(app, settings, client)

    logger.info(f"🚀 Teams Bridge initialised (authority mode: {settings.bot_authority_mode})")
    if settings.global_bot_app_id:
        logger.info("Using global bot identity; per-tenant bots resolved via directory")
    if settings.capture_url:
        logger.info("Human answer capture is enabled")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()


@app.get("/health")
async def health():
    return {"status": "ok"}


# Router registrieren
app.include_router(teams_router.router)


def run() -> None:
    """Startet uvicorn auf dem konfigurierten Port."""
    import uvicorn

    settings = load_settings()
    uvicorn.run("teams_bridge.main:app", host="0.0.0.0", port=settings.service_port)
