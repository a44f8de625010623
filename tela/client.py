"""
Async Python client for the Tela API.

Attaches the bearer token to every request and unwraps the response
envelope. A 401 drops the stored token and fires `on_unauthorized` so the
caller can end its session, then raises.
"""

import logging
from typing import Any, Callable, Optional

import httpx

logger = logging.getLogger(__name__)


class TelaAPIError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[list[str]] = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class UnauthorizedError(TelaAPIError):
    pass


class TelaClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        on_unauthorized: Optional[Callable[[], Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.token = token
        self.on_unauthorized = on_unauthorized
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout, connect=10),
        )

    async def __aenter__(self) -> "TelaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        resp = await self._client.request(method, path, headers=headers, **kwargs)
        if resp.status_code >= 400:
            self._raise_for_status(resp, method, path)
        return resp

    def _raise_for_status(self, resp: httpx.Response, method: str, path: str) -> None:
        try:
            body = resp.json()
        except ValueError:
            body = {"success": resp.is_success, "message": resp.text[:500]}

        if resp.status_code == 401:
            logger.info("Tela API rejected the token, clearing session")
            self.token = None
            if self.on_unauthorized:
                self.on_unauthorized()
            raise UnauthorizedError(401, body.get("message", "Unauthorized"), body.get("errors"))

        logger.warning("Tela API %s %s failed with %d", method, path, resp.status_code)
        raise TelaAPIError(resp.status_code, body.get("message", resp.reason_phrase), body.get("errors"))

    async def request(self, method: str, path: str, **kwargs) -> dict:
        """Send a request and return the decoded envelope."""
        resp = await self._send(method, path, **kwargs)
        return resp.json()

    # ── Chat ─────────────────────────────────────────────────────

    async def send_message(self, message: str, conversation_id: Optional[str] = None) -> dict:
        payload = {"message": message}
        if conversation_id:
            payload["conversation_id"] = conversation_id
        return (await self.request("POST", "/v1/chat/message", json=payload))["data"]

    async def list_conversations(self, page: int = 1, limit: int = 20) -> dict:
        return await self.request("GET", "/v1/chat/conversations", params={"page": page, "limit": limit})

    async def get_conversation(self, conversation_id: str) -> dict:
        return (await self.request("GET", f"/v1/chat/conversations/{conversation_id}"))["data"]

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.request("DELETE", f"/v1/chat/conversations/{conversation_id}")

    # ── Tasks ────────────────────────────────────────────────────

    async def create_task(self, title: str, **fields) -> dict:
        return (await self.request("POST", "/v1/tasks", json={"title": title, **fields}))["data"]

    async def list_tasks(self, page: int = 1, limit: int = 20, **filters) -> dict:
        return await self.request("GET", "/v1/tasks", params={"page": page, "limit": limit, **filters})

    async def complete_task(self, task_id: str) -> dict:
        return (await self.request("POST", f"/v1/tasks/{task_id}/complete"))["data"]

    # ── Memory ───────────────────────────────────────────────────

    async def remember(self, type: str, key: str, value: Any, **fields) -> dict:
        """Create or overwrite the entry for (key, type)."""
        payload = {"type": type, "key": key, "value": value, **fields}
        return (await self.request("PUT", "/v1/memory", json=payload))["data"]

    async def list_memories(self, page: int = 1, limit: int = 20, **filters) -> dict:
        return await self.request("GET", "/v1/memory", params={"page": page, "limit": limit, **filters})

    # ── Designs ──────────────────────────────────────────────────

    async def create_design(self, name: str, prompt: str, **fields) -> dict:
        payload = {"name": name, "prompt": prompt, **fields}
        return (await self.request("POST", "/v1/designs", json=payload))["data"]

    async def get_design(self, project_id: str) -> dict:
        return (await self.request("GET", f"/v1/designs/{project_id}"))["data"]

    # ── Files ────────────────────────────────────────────────────

    async def upload_file(self, filename: str, content: bytes, content_type: str, **form) -> dict:
        files = {"file": (filename, content, content_type)}
        data = {k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in form.items()}
        return (await self.request("POST", "/v1/files/upload", files=files, data=data))["data"]

    async def download_file(self, file_id: str) -> bytes:
        resp = await self._send("GET", f"/v1/files/{file_id}/download", follow_redirects=True)
        return resp.content

    # ── Account ──────────────────────────────────────────────────

    async def get_account(self) -> dict:
        return (await self.request("GET", "/v1/account"))["data"]
