from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import httpx


class HttpFetchError(RuntimeError):
    pass


class HttpStatusError(HttpFetchError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"GET {url} failed with status {status_code}.")
        self.url = url
        self.status_code = status_code


class HttpTooLarge(HttpFetchError):
    pass


def new_client(*, timeout_seconds: float, user_agent: str) -> httpx.Client:
    return httpx.Client(
        timeout=httpx.Timeout(timeout_seconds),
        headers={"User-Agent": user_agent},
        follow_redirects=True,
    )


@contextmanager
def _client_scope(
    client: Optional[httpx.Client],
    *,
    timeout_seconds: float,
    user_agent: str,
) -> Iterator[httpx.Client]:
    if client is not None:
        yield client
        return
    with new_client(timeout_seconds=timeout_seconds, user_agent=user_agent) as owned:
        yield owned


def fetch_bytes(
    url: str,
    *,
    timeout_seconds: float,
    max_bytes: int,
    user_agent: str,
    client: Optional[httpx.Client] = None,
) -> bytes:
    """
    GET a URL and return the response body.

    The body is streamed and abandoned as soon as it exceeds max_bytes. There
    are no retries; callers decide whether a failure skips one artifact or a
    whole cycle.
    """
    with _client_scope(client, timeout_seconds=timeout_seconds, user_agent=user_agent) as http:
        try:
            with http.stream("GET", url, timeout=timeout_seconds) as response:
                if response.status_code < 200 or response.status_code >= 300:
                    raise HttpStatusError(url, response.status_code)

                content_length = response.headers.get("content-length")
                if content_length:
                    try:
                        advertised = int(content_length)
                    except ValueError:
                        advertised = None
                    if advertised is not None and advertised > max_bytes:
                        raise HttpTooLarge(f"GET {url} advertises {advertised} bytes.")

                bytes_read = 0
                chunks: list[bytes] = []
                for chunk in response.iter_bytes():
                    bytes_read += len(chunk)
                    if bytes_read > max_bytes:
                        raise HttpTooLarge(f"GET {url} exceeded {max_bytes} bytes.")
                    chunks.append(chunk)
                return b"".join(chunks)
        except httpx.TimeoutException as exc:
            raise HttpFetchError(f"GET {url} timed out.") from exc
        except httpx.HTTPError as exc:
            raise HttpFetchError(f"GET {url} failed: {exc}") from exc


def decode_text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


__all__ = [
    "HttpFetchError",
    "HttpStatusError",
    "HttpTooLarge",
    "new_client",
    "fetch_bytes",
    "decode_text",
]
