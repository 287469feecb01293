from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import FeedFetchError, FeedParseError, NoSuccessfulBuildError
from .http_fetch import HttpFetchError, fetch_bytes

"""
capz_exporter.build_locator - latest successful build lookup

Reads the Prow job-status feed (prowjobs.js) and picks the newest successful
run of one job. Only spec.job, status.state and status.build_id are read so
the rest of the ProwJob schema may evolve freely.

Build ID ordering assumes Prow's decimal, monotonically increasing IDs. They
are compared by (length, value), which is numeric order for decimal strings
and plain lexicographic order when all IDs share a width.
"""

logger = logging.getLogger("capz_exporter.build_locator")

# prowjobv1.SuccessState
SUCCESS_STATE = "success"


class _FeedModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ProwJobSpec(_FeedModel):
    job: str = ""


class ProwJobStatus(_FeedModel):
    state: str = ""
    build_id: str = ""


class ProwJobRecord(_FeedModel):
    spec: ProwJobSpec = Field(default_factory=ProwJobSpec)
    status: ProwJobStatus = Field(default_factory=ProwJobStatus)


class ProwJobList(_FeedModel):
    items: List[ProwJobRecord] = Field(default_factory=list)


def parse_feed(raw: bytes) -> ProwJobList:
    try:
        return ProwJobList.model_validate_json(raw)
    except ValidationError as exc:
        raise FeedParseError(
            f"Prow job feed did not match the expected shape ({exc.error_count()} errors)."
        ) from exc


def build_id_sort_key(build_id: str) -> tuple[int, str]:
    return (len(build_id), build_id)


def select_latest_build_id(records: Iterable[ProwJobRecord], job_name: str) -> str:
    """
    Return the highest build ID among successful runs of job_name.

    Raises NoSuccessfulBuildError when nothing matches.
    """
    candidates = [
        record.status.build_id
        for record in records
        if record.spec.job == job_name
        and record.status.state == SUCCESS_STATE
        and record.status.build_id
    ]
    if not candidates:
        raise NoSuccessfulBuildError(job_name)
    return max(candidates, key=build_id_sort_key)


def find_latest_build_id(
    job_name: str,
    *,
    feed_url: str,
    timeout_seconds: float,
    max_bytes: int,
    user_agent: str,
    client: Optional[httpx.Client] = None,
) -> str:
    """
    Fetch the job-status feed and return the latest successful build ID.
    """
    try:
        raw = fetch_bytes(
            feed_url,
            timeout_seconds=timeout_seconds,
            max_bytes=max_bytes,
            user_agent=user_agent,
            client=client,
        )
    except HttpFetchError as exc:
        raise FeedFetchError(f"Error fetching Prow jobs: {exc}") from exc

    feed = parse_feed(raw)
    build_id = select_latest_build_id(feed.items, job_name)
    logger.info("Latest successful build for %s: %s", job_name, build_id)
    return build_id


__all__ = [
    "ProwJobRecord",
    "ProwJobList",
    "parse_feed",
    "select_latest_build_id",
    "find_latest_build_id",
]
