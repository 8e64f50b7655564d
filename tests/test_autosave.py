import asyncio
import json

import httpx
import pytest

from client.api_client import SheetApiClient
from client.autosave import SheetAutoSaver
from core.exceptions import PersistenceError, StaleRevisionError
from core.interfaces import SaveTransport
from core.models import SheetData, SheetMetadata, TestSheet, TestSheetCreate, TestSheetUpdate
from engine.grid import Grid
from web import api


class FakeTransport(SaveTransport):
    """Records saves; versions listed in ``blocked`` wait for ``gate``."""

    def __init__(self, blocked=(), fail=None):
        self.calls = []
        self.blocked = set(blocked)
        self.gate = asyncio.Event()
        self.fail = fail

    async def save_sheet(self, sheet_id: int, changes: TestSheetUpdate) -> TestSheet:
        version = changes.metadata.version
        self.calls.append((version, changes.data))
        if version in self.blocked:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return TestSheet(id=sheet_id, name="Sheet", project_id=1, data=changes.data, metadata=changes.metadata)


def _data(value: str) -> SheetData:
    grid = Grid(rows=5, cols=5)
    grid.set_cell("A1", value)
    return grid.to_data()


@pytest.mark.asyncio
async def test_debounce_sends_only_latest_state():
    transport = FakeTransport()
    saver = SheetAutoSaver(1, transport, debounce_seconds=0.01)

    saver.schedule(_data("1"))
    saver.schedule(_data("2"))
    revision = saver.schedule(_data("3"))
    await saver.drain()

    assert revision == 4
    assert len(transport.calls) == 1
    version, data = transport.calls[0]
    assert version == 4
    assert data.cells["A1"].value == 3
    assert saver.last_applied_revision == 4
    assert not saver.has_pending


@pytest.mark.asyncio
async def test_revisions_continue_from_metadata_version():
    saver = SheetAutoSaver(1, FakeTransport(), metadata=SheetMetadata(version=6), debounce_seconds=10)
    assert saver.schedule(_data("1")) == 7
    await saver.close()


@pytest.mark.asyncio
async def test_out_of_order_response_is_discarded():
    transport = FakeTransport(blocked={2})
    saved = []
    saver = SheetAutoSaver(1, transport, debounce_seconds=10, on_saved=saved.append)

    saver.schedule(_data("old"))
    slow = asyncio.create_task(saver.flush())
    await asyncio.sleep(0)

    saver.schedule(_data("new"))
    fast = await saver.flush()
    transport.gate.set()

    assert await slow is None
    assert fast.metadata.version == 3
    assert saver.last_applied_revision == 3
    assert [s.data.cells["A1"].value for s in saved] == ["new"]
    await saver.close()


@pytest.mark.asyncio
async def test_failed_save_is_reported_and_grid_untouched():
    errors = []
    transport = FakeTransport(fail=PersistenceError("network down", sheet_id=1))
    saver = SheetAutoSaver(1, transport, debounce_seconds=10, on_error=errors.append)
    data = _data("5")

    saver.schedule(data)
    assert await saver.flush() is None

    assert saver.last_error is errors[0]
    assert errors[0].message == "network down"
    assert saver.last_applied_revision == 1
    assert data.cells["A1"].value == 5

    transport.fail = None
    saver.schedule(data)
    assert (await saver.flush()).metadata.version == 3
    assert saver.last_error is None
    await saver.close()


@pytest.mark.asyncio
async def test_stale_revision_is_not_an_error():
    errors = []
    transport = FakeTransport(fail=StaleRevisionError(1, 2, 5))
    saver = SheetAutoSaver(1, transport, debounce_seconds=10, on_error=errors.append)
    saver.schedule(_data("1"))
    assert await saver.flush() is None
    assert errors == []
    assert saver.last_error is None
    await saver.close()


@pytest.mark.asyncio
async def test_close_can_flush_pending():
    transport = FakeTransport()
    saver = SheetAutoSaver(1, transport, debounce_seconds=10)
    saver.schedule(_data("1"))
    await saver.close(flush=True)
    assert len(transport.calls) == 1
    assert not saver.has_pending


@pytest.mark.asyncio
async def test_flush_without_pending_is_noop():
    transport = FakeTransport()
    saver = SheetAutoSaver(1, transport)
    assert await saver.flush() is None
    assert transport.calls == []


# ─────────────────────────────────────────────────────────────
# HTTP client
# ─────────────────────────────────────────────────────────────

def _sheet_json(version: int) -> dict:
    sheet = TestSheet(id=1, name="Sheet", project_id=1, metadata=SheetMetadata(version=version))
    return sheet.to_wire()


@pytest.mark.asyncio
async def test_api_client_puts_wire_payload():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=_sheet_json(2))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        client = SheetApiClient(user_id=4, client=http)
        saved = await client.save_sheet(
            1, TestSheetUpdate(data=_data("9"), metadata=SheetMetadata(version=2))
        )

    assert saved.metadata.version == 2
    request = requests[0]
    assert request.method == "PUT"
    assert request.url.path == "/api/test-sheets/1"
    assert request.headers["X-User-Id"] == "4"
    body = json.loads(request.content)
    assert body["metadata"]["version"] == 2
    assert body["data"]["cells"]["A1"] == {"value": 9, "type": "number"}
    assert "name" not in body


@pytest.mark.asyncio
async def test_api_client_maps_conflict():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"detail": "stale", "current": 8})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        client = SheetApiClient(client=http)
        with pytest.raises(StaleRevisionError) as exc_info:
            await client.save_sheet(1, TestSheetUpdate(metadata=SheetMetadata(version=3)))
    assert exc_info.value.current == 8
    assert exc_info.value.revision == 3


@pytest.mark.asyncio
async def test_api_client_maps_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        client = SheetApiClient(client=http)
        with pytest.raises(PersistenceError) as exc_info:
            await client.save_sheet(1, TestSheetUpdate(data=_data("1")))
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_api_client_maps_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        client = SheetApiClient(client=http)
        with pytest.raises(PersistenceError) as exc_info:
            await client.save_sheet(1, TestSheetUpdate(data=_data("1")))
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_api_client_conflict_without_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, text="<html>Conflict</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        client = SheetApiClient(client=http)
        with pytest.raises(StaleRevisionError) as exc_info:
            await client.save_sheet(1, TestSheetUpdate(metadata=SheetMetadata(version=3)))
    assert exc_info.value.current == 3


@pytest.mark.asyncio
async def test_autosave_reports_unreadable_success_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy login</html>")

    errors = []
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        saver = SheetAutoSaver(
            1, SheetApiClient(client=http), debounce_seconds=10, on_error=errors.append
        )
        saver.schedule(_data("1"))
        assert await saver.flush() is None
        await saver.close()

    assert len(errors) == 1
    assert saver.last_error is errors[0]
    assert errors[0].status_code == 200
    assert saver.last_applied_revision == 1


@pytest.mark.asyncio
async def test_api_client_rejects_body_that_is_not_a_sheet():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "not-a-number"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        client = SheetApiClient(client=http)
        with pytest.raises(PersistenceError):
            await client.save_sheet(1, TestSheetUpdate(data=_data("1")))


@pytest.mark.asyncio
async def test_autosave_against_api(repository):
    sheet = await repository.create_sheet(TestSheetCreate(name="Live", project_id=1))
    transport = httpx.ASGITransport(app=api.app)

    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        saver = SheetAutoSaver(
            sheet.id,
            SheetApiClient(client=http),
            metadata=sheet.metadata,
            debounce_seconds=0.01,
        )
        saver.schedule(_data("=2+3"))
        await saver.drain()

    stored = await repository.get_sheet(sheet.id)
    assert stored.metadata.version == 2
    assert stored.data.cells["A1"].value == 5
    assert saver.last_error is None
