import httpx
import pytest

from conftest import FEEDBACK_URL, LOOKUP_URL, RAG_URL
from teams_bridge.core.answers import AnswerService
from teams_bridge.core.directory import TenantDirectory
from teams_bridge.core.errors import AnswerError, TokenError
from teams_bridge.core.minter import CredentialMinter
from teams_bridge.core.models import TenantCredential


@pytest.fixture
def directory(http_client):
    return TenantDirectory(http_client, LOOKUP_URL, "anon-key", "internal-secret")


@pytest.fixture
def answers(http_client):
    return AnswerService(http_client, RAG_URL, FEEDBACK_URL, "anon-key", "internal-secret")


CREDENTIAL = TenantCredential(internal_tenant_id="tenant-7", bot_client_id="bot-7", bot_client_secret="secret-7")


@pytest.mark.asyncio
async def test_directory_sends_internal_headers(backend, directory):
    assert await directory.resolve_by_external_org("org-42") == "tenant-7"

    call = backend.calls_to(LOOKUP_URL)[0]
    assert call["headers"]["apikey"] == "anon-key"
    assert call["headers"]["x-internal-token"] == "internal-secret"
    assert call["body"] == {"teams_tenant_id": "org-42", "auto_provision": True}


@pytest.mark.asyncio
async def test_auto_provision_is_idempotent(backend, directory):
    backend.provisionable.add("org-new")

    first = await directory.resolve_by_external_org("org-new", auto_provision=True)
    second = await directory.resolve_by_external_org("org-new", auto_provision=True)

    assert first == second == "tenant-auto-1"
    assert backend.provisioned == 1


@pytest.mark.asyncio
async def test_directory_not_found_returns_none(directory):
    assert await directory.resolve_by_external_org("org-unknown") is None
    assert await directory.resolve_by_bot_identity("bot-unknown") is None


@pytest.mark.asyncio
async def test_directory_network_error_returns_none():
    def broken(request):
        raise httpx.ConnectTimeout("timeout", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(broken))
    directory = TenantDirectory(client, LOOKUP_URL, "anon-key", "internal-secret")

    assert await directory.resolve_by_external_org("org-42") is None
    assert await directory.resolve_by_bot_identity("bot-7") is None


@pytest.mark.asyncio
async def test_resolve_bot_identity_returns_credentials(directory):
    assert await directory.resolve_by_bot_identity("bot-7") == CREDENTIAL


@pytest.mark.asyncio
async def test_mint_single_tenant_uses_org_authority(backend, http_client):
    token = await CredentialMinter(http_client, "single_tenant").mint(CREDENTIAL, "org-42")

    assert token == "minted-token"
    call = backend.calls_to("login.microsoftonline.com")[0]
    assert call["url"] == "https://login.microsoftonline.com/org-42/oauth2/v2.0/token"
    assert call["body"]["scope"] == "https://api.botframework.com/.default"


@pytest.mark.asyncio
async def test_mint_multi_tenant_uses_botframework_authority(backend, http_client):
    await CredentialMinter(http_client, "multi_tenant").mint(CREDENTIAL, "org-42")

    assert backend.calls_to("login.microsoftonline.com")[0]["url"].startswith(
        "https://login.microsoftonline.com/botframework.com/"
    )


@pytest.mark.asyncio
async def test_mint_without_access_token_fails(backend, http_client):
    backend.token_response = {"error": "invalid_client", "error_description": "bad secret"}

    with pytest.raises(TokenError, match="bad secret"):
        await CredentialMinter(http_client).mint(CREDENTIAL, "org-42")


@pytest.mark.asyncio
async def test_mint_without_secret_makes_no_request(backend, http_client):
    credential = TenantCredential(bot_client_id="bot-7")

    with pytest.raises(TokenError):
        await CredentialMinter(http_client).mint(credential, "org-42")
    assert backend.calls == []


@pytest.mark.asyncio
async def test_ask_parses_answer(backend, answers):
    backend.rag_answer["sources"] = [
        {"title": "Refund policy", "url": "https://wiki.test/refunds", "platform": "Confluence", "updated_at": "2024-05-01"}
    ]

    result = await answers.ask("tenant-7", "  What is our refund policy?  ")

    assert result.answer_text == "Refunds are possible within 30 days."
    assert result.confidence == pytest.approx(0.87)
    assert result.correlation_id == "log-1"
    assert result.sources[0].platform_label == "Confluence"
    assert backend.calls_to(RAG_URL)[0]["body"]["question"] == "What is our refund policy?"


@pytest.mark.asyncio
async def test_ask_non_2xx_raises(backend, answers):
    backend.rag_status = 503

    with pytest.raises(AnswerError):
        await answers.ask("tenant-7", "Question?")


@pytest.mark.asyncio
async def test_ask_empty_question_is_never_sent(backend, answers):
    with pytest.raises(AnswerError):
        await answers.ask("tenant-7", "   ")
    assert backend.calls == []


@pytest.mark.asyncio
async def test_submit_feedback_swallows_errors(backend, answers, caplog):
    backend.feedback_status = 500

    await answers.submit_feedback("tenant-7", "log-9", "down")

    call = backend.calls_to(FEEDBACK_URL)[0]
    assert call["body"] == {"qa_log_id": "log-9", "feedback": "down", "tenant_id": "tenant-7", "source": "teams"}
    assert call["headers"]["x-internal-token"] == "internal-secret"
    assert "rejected with 500" in caplog.text


@pytest.mark.asyncio
async def test_ask_accepts_null_sources_and_numeric_log_id(backend, answers):
    backend.rag_answer["sources"] = None
    backend.rag_answer["qa_log_id"] = 1234

    result = await answers.ask("tenant-7", "Question?")

    assert result.sources == []
    assert result.correlation_id == "1234"
