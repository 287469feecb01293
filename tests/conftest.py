from __future__ import annotations

import os
from typing import Callable, Mapping, Tuple, Union

import httpx
import pytest

from capz_exporter.runtime_metrics import reset_exporter_metrics

Body = Union[bytes, str]
Route = Union[Body, Tuple[int, Body]]


@pytest.fixture(autouse=True)
def _isolate_process_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Keep CAPZ_EXPORTER_* settings from the host shell out of test runs and
    start every test with fresh self-metrics.
    """
    for name in list(os.environ):
        if name.startswith("CAPZ_EXPORTER_"):
            monkeypatch.delenv(name, raising=False)
    reset_exporter_metrics()


def route_key(url: httpx.URL) -> str:
    return f"{url.host}{url.path}"


@pytest.fixture
def make_client() -> Callable[[Mapping[str, Route]], httpx.Client]:
    """
    Build an httpx.Client whose responses come from a {host+path: body} map.

    A route value may be a body (served with 200) or a (status, body) pair.
    Unknown paths return 404. Requested keys are recorded on client.requested.
    """

    def _make(routes: Mapping[str, Route]) -> httpx.Client:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            key = route_key(request.url)
            requested.append(key)
            if key not in routes:
                return httpx.Response(404, content=b"not found")
            route = routes[key]
            status, body = route if isinstance(route, tuple) else (200, route)
            if isinstance(body, str):
                body = body.encode("utf-8")
            return httpx.Response(status, content=body)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        client.requested = requested  # type: ignore[attr-defined]
        return client

    return _make
