import asyncio

import httpx
import pytest

from config import DashboardConfig
from connectors.base import CancellationToken, FetchCancelledError, TransportError, UpstreamError
from connectors.clickup import ClickUpConnector


CONFIG = DashboardConfig(
    api_token="pk_test",
    list_id="L1",
    api_base="https://api.test",
    page_size=100,
)


def _page(start: int, count: int) -> list[dict[str, str]]:
    return [{"id": f"t{start + index}", "name": f"Task {start + index}"} for index in range(count)]


def _connector(handler, **kwargs) -> ClickUpConnector:
    return ClickUpConnector(CONFIG, transport=httpx.MockTransport(handler), **kwargs)


def test_fetch_all_requests_pages_in_order_until_short_page() -> None:
    sizes = [100, 100, 37]
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = int(request.url.params["page"])
        return httpx.Response(200, json={"tasks": _page(page * 100, sizes[page])})

    records = asyncio.run(_connector(handler).fetch_all(CancellationToken(1)))

    assert len(records) == 237
    assert [int(r.url.params["page"]) for r in requests] == [0, 1, 2]
    assert records[0]["id"] == "t0"
    assert records[-1]["id"] == "t236"


def test_fetch_all_sends_list_query_and_raw_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"tasks": _page(0, 3)})

    asyncio.run(_connector(handler).fetch_all(CancellationToken(1)))

    request = seen[0]
    assert request.url.path == "/list/L1/task"
    assert request.headers["Authorization"] == "pk_test"
    assert dict(request.url.params) == {
        "include_closed": "true",
        "subtasks": "true",
        "order_by": "updated",
        "page": "0",
        "page_size": "100",
    }


def test_fetch_all_stops_on_last_page_flag() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(int(request.url.params["page"]))
        return httpx.Response(200, json={"tasks": _page(0, 100), "last_page": True})

    records = asyncio.run(_connector(handler).fetch_all(CancellationToken(1)))

    assert calls == [0]
    assert len(records) == 100


def test_fetch_all_stops_on_empty_page() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        calls.append(page)
        return httpx.Response(200, json={"tasks": _page(0, 100) if page == 0 else []})

    records = asyncio.run(_connector(handler).fetch_all(CancellationToken(1)))

    assert calls == [0, 1]
    assert len(records) == 100


def test_fetch_all_respects_page_ceiling() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(int(request.url.params["page"]))
        return httpx.Response(200, json={"tasks": _page(0, 100)})

    records = asyncio.run(_connector(handler, max_pages=3).fetch_all(CancellationToken(1)))

    assert calls == [0, 1, 2]
    assert len(records) == 300


def test_non_success_response_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text='{"err":"Token invalid","ECODE":"OAUTH_025"}')

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(_connector(handler).fetch_all(CancellationToken(1)))

    assert exc_info.value.status_code == 401
    assert "Token invalid" in exc_info.value.body
    assert str(exc_info.value).startswith("ClickUp API error (401)")


def test_failure_on_later_page_discards_partial_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["page"] == "0":
            return httpx.Response(200, json={"tasks": _page(0, 100)})
        return httpx.Response(500, text="Internal Server Error")

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(_connector(handler).fetch_tasks(CancellationToken(1)))

    assert exc_info.value.status_code == 500


def test_invalid_json_body_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy error</html>")

    with pytest.raises(UpstreamError):
        asyncio.run(_connector(handler).fetch_all(CancellationToken(1)))


def test_unreachable_upstream_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(_connector(handler).fetch_all(CancellationToken(1)))

    assert "Unable to reach ClickUp" in str(exc_info.value)


def test_cancelled_token_stops_before_any_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"tasks": []})

    token = CancellationToken(7)
    token.cancel()

    with pytest.raises(FetchCancelledError) as exc_info:
        asyncio.run(_connector(handler).fetch_all(token))

    assert calls == []
    assert "before_page:0" in str(exc_info.value)


def test_token_cancelled_mid_fetch_stops_paging() -> None:
    token = CancellationToken(3)
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(int(request.url.params["page"]))
        token.cancel("stopped")
        return httpx.Response(200, json={"tasks": _page(0, 100)})

    with pytest.raises(FetchCancelledError) as exc_info:
        asyncio.run(_connector(handler).fetch_all(token))

    assert calls == [0]
    assert "after_page:0" in str(exc_info.value)


def test_fetch_tasks_normalizes_records() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "tasks": [
                    {"id": "a1", "name": "Patch kernel", "status": {"status": "complete", "type": "closed"}},
                    {"id": "a2", "custom_id": "OPS-2", "name": "Renew domain"},
                ],
                "last_page": True,
            },
        )

    tasks = asyncio.run(_connector(handler).fetch_tasks(CancellationToken(1)))

    assert [task.id for task in tasks] == ["a1", "OPS-2"]
    assert tasks[0].is_closed
    assert not tasks[1].is_closed
