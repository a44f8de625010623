"""
Tests for the LLM client's retry handling, against a mocked transport.
"""

import httpx
import pytest

from tela.services import llm


class TestRetryDelay:
    def test_seconds_value_is_used(self):
        assert llm._retry_delay("3", attempt=0) == 3.0

    def test_http_date_falls_back_to_backoff(self, monkeypatch):
        monkeypatch.setattr(llm, "_backoff", lambda attempt: 0.25)
        assert llm._retry_delay("Wed, 21 Oct 2015 07:28:00 GMT", attempt=1) == 0.25

    def test_missing_header_uses_backoff(self, monkeypatch):
        monkeypatch.setattr(llm, "_backoff", lambda attempt: 0.5)
        assert llm._retry_delay(None, attempt=0) == 0.5


class TestRetryRequest:
    @pytest.mark.asyncio
    async def test_date_retry_after_still_retries(self, monkeypatch):
        monkeypatch.setattr(llm, "_backoff", lambda attempt: 0)
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
            return httpx.Response(200, json={"ok": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            resp = await llm._retry_request(client, "POST", "http://llm.test/chat/completions")

        assert resp.status_code == 200
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, monkeypatch):
        monkeypatch.setattr(llm, "_backoff", lambda attempt: 0)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await llm._retry_request(client, "GET", "http://llm.test/models")
