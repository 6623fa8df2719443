"""Tests for the Microsoft Graph email client."""

import json

import httpx
import pytest

from backoffice.infrastructure.graph_email_client import GraphEmailClient


def _client(handler) -> GraphEmailClient:
    return GraphEmailClient(
        tenant_id="tenant",
        client_id="client",
        client_secret="secret",
        sender_email="accounts@venue.example",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_send_email_posts_to_graph():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "oauth2" in request.url.path:
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        return httpx.Response(202)

    client = _client(handler)
    result = await client.send_email("a@example.com", "Subject", "Body", cc=["b@example.com"])
    await client.send_email("a@example.com", "Again", "Body")

    assert result.success
    # Token fetched once and cached
    assert sum("oauth2" in r.url.path for r in requests) == 1

    send_request = requests[1]
    assert send_request.url.path.endswith("/sendMail")
    assert "accounts" in send_request.url.path
    assert send_request.headers["Authorization"] == "Bearer tok"
    payload = json.loads(send_request.content)
    assert payload["message"]["toRecipients"] == [{"emailAddress": {"address": "a@example.com"}}]
    assert payload["message"]["ccRecipients"] == [{"emailAddress": {"address": "b@example.com"}}]


@pytest.mark.asyncio
async def test_send_email_failure_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        if "oauth2" in request.url.path:
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        return httpx.Response(503)

    result = await _client(handler).send_email("a@example.com", "Subject", "Body")

    assert not result.success
    assert result.error == "Graph API error 503"


@pytest.mark.asyncio
async def test_unusable_token_response_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        if "oauth2" in request.url.path:
            return httpx.Response(200, text="<html>Sign in</html>")
        return httpx.Response(202)

    result = await _client(handler).send_email("a@example.com", "Subject", "Body")

    assert not result.success
    assert result.error == "Invalid token response from Microsoft Graph"


@pytest.mark.asyncio
async def test_token_response_without_access_token_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "invalid_client"})

    result = await _client(handler).send_email("a@example.com", "Subject", "Body")

    assert not result.success


def test_missing_configuration_raises(monkeypatch):
    from backoffice.settings import settings

    monkeypatch.setattr(settings, "microsoft_tenant_id", None)

    with pytest.raises(ValueError):
        GraphEmailClient(client_id="client", client_secret="secret", sender_email="a@example.com")
