"""
Tests for the file endpoints under /v1/files, backed by local storage.
"""

import pytest
from httpx import AsyncClient

from conftest import OTHER_USER_ID, bearer
from tela.core.config import get_settings


async def _upload(
    client: AsyncClient,
    name: str = "notes.txt",
    data: bytes = b"hello",
    content_type: str = "text/plain",
    **form,
) -> dict:
    resp = await client.post(
        "/v1/files/upload",
        files={"file": (name, data, content_type)},
        data=form,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_derives_category(self, client: AsyncClient):
        record = await _upload(client)
        assert record["original_name"] == "notes.txt"
        assert record["mime_type"] == "text/plain"
        assert record["size"] == 5
        assert record["size_formatted"] == "5 Bytes"
        assert record["category"] == "document"
        assert record["extension"] == "txt"
        assert record["is_public"] is False
        assert record["filename"].endswith(".txt")
        assert record["filename"] != "notes.txt"

    @pytest.mark.asyncio
    async def test_explicit_category_and_visibility(self, client: AsyncClient):
        record = await _upload(
            client, "export.json", b'{"a": 1}', "application/json", category="other", is_public="true"
        )
        assert record["category"] == "other"
        assert record["is_public"] is True

    @pytest.mark.asyncio
    async def test_disallowed_type_is_400(self, client: AsyncClient):
        resp = await client.post(
            "/v1/files/upload",
            files={"file": ("run.sh", b"echo hi", "application/x-sh")},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "File rejected"
        assert "not allowed" in body["errors"][0]

    @pytest.mark.asyncio
    async def test_oversized_file_is_400(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(get_settings(), "upload_max_size", 4)
        resp = await client.post(
            "/v1/files/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert resp.status_code == 400
        assert "maximum upload size" in resp.json()["errors"][0]

    @pytest.mark.asyncio
    async def test_missing_file_field_is_400(self, client: AsyncClient):
        resp = await client.post("/v1/files/upload", data={"category": "image"})
        assert resp.status_code == 400


class TestReadFiles:
    @pytest.mark.asyncio
    async def test_download_returns_bytes(self, client: AsyncClient):
        record = await _upload(client, "hello world.txt", b"hello there")
        resp = await client.get(f"/v1/files/{record['id']}/download")
        assert resp.status_code == 200
        assert resp.content == b"hello there"
        assert resp.headers["content-type"].startswith("text/plain")
        assert "hello%20world.txt" in resp.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_list_filters_and_sorting(self, client: AsyncClient):
        await _upload(client, "a.txt", b"a" * 30)
        await _upload(client, "b.png", b"b" * 10, "image/png")
        await _upload(client, "c.json", b"c" * 20, "application/json", is_public="true")

        by_size = (await client.get("/v1/files", params={"sort_by": "size", "sort_order": "asc"})).json()["data"]
        assert [f["original_name"] for f in by_size] == ["b.png", "c.json", "a.txt"]

        images = (await client.get("/v1/files", params={"category": "image"})).json()["data"]
        assert [f["original_name"] for f in images] == ["b.png"]

        public = (await client.get("/v1/files", params={"is_public": "true"})).json()["data"]
        assert [f["original_name"] for f in public] == ["c.json"]

        sized = (await client.get("/v1/files", params={"min_size": 15, "max_size": 25})).json()["data"]
        assert [f["original_name"] for f in sized] == ["c.json"]

        found = (await client.get("/v1/files", params={"search": "A.TXT"})).json()["data"]
        assert [f["original_name"] for f in found] == ["a.txt"]

    @pytest.mark.asyncio
    async def test_invalid_sort_field_is_400(self, client: AsyncClient):
        resp = await client.get("/v1/files", params={"sort_by": "path"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_files_are_private(self, client: AsyncClient):
        record = await _upload(client)
        other = bearer(OTHER_USER_ID)
        assert (await client.get(f"/v1/files/{record['id']}", headers=other)).status_code == 404
        assert (await client.get(f"/v1/files/{record['id']}/download", headers=other)).status_code == 404
        assert (await client.delete(f"/v1/files/{record['id']}", headers=other)).status_code == 404


class TestModifyFiles:
    @pytest.mark.asyncio
    async def test_update_merges_metadata(self, client: AsyncClient):
        record = await _upload(client)
        await client.put(f"/v1/files/{record['id']}", json={"metadata": {"a": 1, "b": 2}})
        resp = await client.put(
            f"/v1/files/{record['id']}", json={"metadata": {"b": 3}, "category": "data"}
        )
        data = resp.json()["data"]
        assert data["metadata"] == {"a": 1, "b": 3}
        assert data["category"] == "data"

    @pytest.mark.asyncio
    async def test_toggle_visibility(self, client: AsyncClient):
        record = await _upload(client)
        first = (await client.post(f"/v1/files/{record['id']}/toggle-visibility")).json()["data"]
        second = (await client.post(f"/v1/files/{record['id']}/toggle-visibility")).json()["data"]
        assert first["is_public"] is True
        assert second["is_public"] is False

    @pytest.mark.asyncio
    async def test_delete_removes_row_and_bytes(self, client: AsyncClient):
        record = await _upload(client)
        assert (await client.delete(f"/v1/files/{record['id']}")).status_code == 200
        assert (await client.get(f"/v1/files/{record['id']}")).status_code == 404
        assert (await client.get(f"/v1/files/{record['id']}/download")).status_code == 404


class TestFileReports:
    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient):
        await _upload(client, "a.txt", b"a" * 100)
        await _upload(client, "b.txt", b"b" * 300, is_public="true")
        await _upload(client, "c.png", b"c" * 50, "image/png")

        stats = (await client.get("/v1/files/stats")).json()["data"]
        assert stats["total_files"] == 3
        assert stats["total_size"] == 450
        assert stats["public_files"] == 1
        assert stats["by_category"]["document"] == {"count": 2, "total_size": 400, "avg_size": 200}
        assert stats["by_category"]["image"] == {"count": 1, "total_size": 50, "avg_size": 50}
        assert stats["top_mime_types"] == [
            {"type": "text/plain", "count": 2},
            {"type": "image/png", "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_large_and_recent(self, client: AsyncClient):
        small = await _upload(client, "small.txt", b"s" * 10)
        big = await _upload(client, "big.txt", b"b" * 2000)

        large = (await client.get("/v1/files/large", params={"min_size": 1000})).json()["data"]
        assert [f["id"] for f in large] == [big["id"]]

        recent = (await client.get("/v1/files/recent", params={"days": 1})).json()["data"]
        assert {f["id"] for f in recent} == {small["id"], big["id"]}
