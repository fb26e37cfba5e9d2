import json
import time
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient

from teams_bridge.core.config import Settings
from teams_bridge.main import init_services
from teams_bridge.routers import teams

OPENID_URL = "https://login.botframework.com/v1/.well-known/openidconfiguration"
JWKS_URL = "https://login.botframework.com/v1/.well-known/keys"
LOOKUP_URL = "https://directory.test/functions/v1/teams-tenant-lookup"
RAG_URL = "https://rag.test/functions/v1/rag-query"
FEEDBACK_URL = "https://rag.test/functions/v1/feedback"
CAPTURE_URL = "https://rag.test/functions/v1/capture-human-answers"
SERVICE_URL = "https://smba.test/amer/"
ACTIVITIES_URL = "https://smba.test/amer/v3/conversations/conv-1/activities"
KID = "test-key"
ISSUER = "https://api.botframework.com"

PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
OTHER_PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_jwks() -> Dict[str, Any]:
    jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(PRIVATE_KEY.public_key()))
    jwk.update({"kid": KID, "use": "sig", "alg": "RS256"})
    return {"keys": [jwk]}


def make_token(aud: str = "bot-7", iss: str = ISSUER, key=PRIVATE_KEY, kid: str = KID, exp_offset: int = 600) -> str:
    now = int(time.time())
    claims = {"aud": aud, "iss": iss, "iat": now, "nbf": now, "exp": now + exp_offset}
    return jwt.encode(claims, key, algorithm="RS256", headers={"kid": kid})


def message_activity(text: Optional[str] = "What is our refund policy?", org: Optional[str] = "org-42", **extra) -> Dict[str, Any]:
    activity = {
        "type": "message",
        "id": "act-1",
        "serviceUrl": SERVICE_URL,
        "conversation": {"id": "conv-1"},
        "from": {"id": "user-1"},
        "channelData": {"tenant": {"id": org}} if org else {},
    }
    if text is not None:
        activity["text"] = text
    activity.update(extra)
    return activity


class FakeBackend:
    """Simuliert alle externen Systeme und protokolliert jeden Aufruf."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.bots = {"bot-7": {"tenant_id": "tenant-7", "bot_app_id": "bot-7", "bot_app_password": "secret-7"}}
        self.orgs = {"org-42": "tenant-7"}
        self.provisionable = set()
        self.provisioned = 0
        self.rag_status = 200
        self.feedback_status = 200
        self.rag_answer: Dict[str, Any] = {
            "answer": "Refunds are possible within 30 days.",
            "confidence": 0.87,
            "reviewed": True,
            "sources": [{"title": "Refund policy", "url": "https://wiki.test/refunds"}],
            "qa_log_id": "log-1",
        }
        self.token_response: Dict[str, Any] = {"access_token": "minted-token", "expires_in": 3599}
        self.placeholder_response: Dict[str, Any] = {"id": "P"}
        self.fail_activity_methods = set()

    def calls_to(self, url_part: str, method: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            c for c in self.calls
            if url_part in c["url"] and (method is None or c["method"] == method)
        ]

    def _record(self, request: httpx.Request) -> Dict[str, Any]:
        content_type = request.headers.get("content-type", "")
        if "application/json" in content_type:
            body = json.loads(request.content)
        elif "form-urlencoded" in content_type:
            body = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        else:
            body = None
        call = {"method": request.method, "url": str(request.url), "headers": request.headers, "body": body}
        self.calls.append(call)
        return call

    def handle(self, request: httpx.Request) -> httpx.Response:
        call = self._record(request)
        url, body = call["url"], call["body"]

        if url == OPENID_URL:
            return httpx.Response(200, json={"jwks_uri": JWKS_URL})
        if url == JWKS_URL:
            return httpx.Response(200, json=public_jwks())
        if url == LOOKUP_URL:
            return self._lookup(body)
        if url.startswith("https://login.microsoftonline.com/"):
            return httpx.Response(200, json=self.token_response)
        if url == RAG_URL:
            return httpx.Response(self.rag_status, json=self.rag_answer)
        if url == FEEDBACK_URL:
            return httpx.Response(self.feedback_status, json={"ok": self.feedback_status == 200})
        if url == CAPTURE_URL:
            return httpx.Response(200, json={"ok": True})
        if url.startswith(ACTIVITIES_URL):
            if request.method in self.fail_activity_methods:
                return httpx.Response(502, json={"error": "bad gateway"})
            if request.method == "POST" and len([c for c in self.calls_to(ACTIVITIES_URL, "POST")]) == 1:
                return httpx.Response(201, json=self.placeholder_response)
            return httpx.Response(200, json={"id": body.get("id") or "A2"})
        return httpx.Response(404)

    def _lookup(self, body: Dict[str, Any]) -> httpx.Response:
        if "bot_app_id" in body:
            bot = self.bots.get(body["bot_app_id"])
            return httpx.Response(200, json=bot) if bot else httpx.Response(404, json={"error": "not found"})

        org = body.get("teams_tenant_id")
        if org not in self.orgs and body.get("auto_provision") and org in self.provisionable:
            self.provisioned += 1
            self.orgs[org] = f"tenant-auto-{self.provisioned}"
        if org in self.orgs:
            return httpx.Response(200, json={"tenant_id": self.orgs[org]})
        return httpx.Response(404, json={"error": "not found"})


def make_settings(**overrides) -> Settings:
    values = {
        "internal_lookup_secret": "internal-secret",
        "tenant_lookup_url": LOOKUP_URL,
        "rag_query_url": RAG_URL,
        "anon_api_key": "anon-key",
        "capture_url": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def http_client(backend):
    return httpx.AsyncClient(transport=httpx.MockTransport(backend.handle))


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, http_client):
    test_app = FastAPI()
    test_app.include_router(teams.router)
    init_services(test_app, settings, http_client)
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}
