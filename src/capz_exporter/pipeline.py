from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from .artifacts import API_AVAILABILITY, POD_STARTUP_LATENCY, parse_api_availability, parse_pod_startup_latency
from .build_locator import find_latest_build_id
from .config import ExporterConfig
from .crawler import ArtifactLink, CrawlContext, build_artifacts_url, crawl
from .errors import ArtifactFetchError, ArtifactParseError, ExporterError, PageFetchError
from .http_fetch import HttpFetchError, decode_text, fetch_bytes
from .publisher import MetricPublisher
from .registry import GaugeRegistry
from .runtime_metrics import observe_cycle

logger = logging.getLogger("capz_exporter.pipeline")

ArtifactFetcher = Callable[[str], bytes]


@dataclass
class CycleResult:
    build_id: str
    cluster: str = ""
    artifacts_seen: int = 0
    artifacts_published: int = 0
    artifacts_failed: int = 0
    samples_written: int = 0
    series_pruned: int = 0
    pages_failed: int = 0
    failures: list[str] = field(default_factory=list)


def page_fetcher(config: ExporterConfig, client: Optional[httpx.Client]) -> Callable[[str], str]:
    def fetch_page(url: str) -> str:
        try:
            raw = fetch_bytes(
                url,
                timeout_seconds=config.http_timeout_seconds,
                max_bytes=config.max_artifact_bytes,
                user_agent=config.user_agent,
                client=client,
            )
        except HttpFetchError as exc:
            raise PageFetchError(str(exc)) from exc
        return decode_text(raw)

    return fetch_page


def _artifact_fetcher(config: ExporterConfig, client: Optional[httpx.Client]) -> ArtifactFetcher:
    def fetch_artifact(url: str) -> bytes:
        try:
            return fetch_bytes(
                url,
                timeout_seconds=config.http_timeout_seconds,
                max_bytes=config.max_artifact_bytes,
                user_agent=config.user_agent,
                client=client,
            )
        except HttpFetchError as exc:
            raise ArtifactFetchError(str(exc)) from exc

    return fetch_artifact


def process_artifact(link: ArtifactLink, *, publisher: MetricPublisher, fetch: ArtifactFetcher) -> int:
    """
    Fetch, parse and publish one artifact. Returns the number of samples set.

    Raises ArtifactFetchError or ArtifactParseError; nothing is published when
    either is raised.
    """
    raw = fetch(link.url)
    if link.kind == POD_STARTUP_LATENCY:
        samples = parse_pod_startup_latency(raw, artifact=link.file_name)
        return publisher.publish_pod_startup(link, samples)
    if link.kind == API_AVAILABILITY:
        result = parse_api_availability(raw, artifact=link.file_name)
        return publisher.publish_api_availability(link, result)
    raise ArtifactParseError(link.file_name, f"unsupported artifact kind {link.kind!r}")


def crawl_and_publish(
    build_id: str,
    *,
    config: ExporterConfig,
    publisher: MetricPublisher,
    client: Optional[httpx.Client] = None,
    should_stop: Callable[[], bool] = lambda: False,
) -> CycleResult:
    """
    Crawl one build's artifacts and publish every result found.

    Per-artifact failures are logged and counted; the remaining artifacts are
    still processed.
    """
    seed_url = build_artifacts_url(config.listing_root, config.job_name, build_id)
    logger.info("Crawling %s", seed_url)

    result = CycleResult(build_id=build_id)
    fetch_artifact = _artifact_fetcher(config, client)
    ctx = CrawlContext(build_id=build_id, cluster_prefix=config.cluster_prefix)
    links = crawl(
        seed_url,
        build_id=build_id,
        fetch_page=page_fetcher(config, client),
        cluster_prefix=config.cluster_prefix,
        max_pages=config.max_pages,
        context=ctx,
    )
    for link in links:
        if should_stop():
            logger.info("Stop requested; abandoning remaining artifacts for build %s.", build_id)
            break
        result.artifacts_seen += 1
        try:
            written = process_artifact(link, publisher=publisher, fetch=fetch_artifact)
        except (ArtifactFetchError, ArtifactParseError) as exc:
            result.artifacts_failed += 1
            result.failures.append(f"{link.file_name}: {exc}")
            logger.warning("Skipping artifact %s: %s", link.url, exc)
            continue
        result.artifacts_published += 1
        result.samples_written += written
        logger.info(
            "Published %s samples from %s (cluster=%r).", written, link.file_name, link.cluster
        )

    result.cluster = ctx.cluster
    result.pages_failed = ctx.pages_failed
    if result.samples_written:
        result.series_pruned = publisher.registry.prune("buildID", build_id)
        if result.series_pruned:
            logger.info("Dropped %s series from earlier builds.", result.series_pruned)
    return result


def run_cycle(
    config: ExporterConfig,
    registry: GaugeRegistry,
    *,
    client: Optional[httpx.Client] = None,
) -> CycleResult:
    """
    Run one full sampling cycle: locate the latest build, then crawl and publish.

    ExporterError from the build lookup propagates to the caller, which is
    expected to log it and try again on the next interval.
    """
    build_id = locate_latest_build(config, client=client)
    publisher = MetricPublisher(registry, namespace=config.metric_namespace)
    return observed_crawl(build_id, config=config, publisher=publisher, client=client)


def locate_latest_build(config: ExporterConfig, *, client: Optional[httpx.Client] = None) -> str:
    started = time.monotonic()
    try:
        return find_latest_build_id(
            config.job_name,
            feed_url=config.feed_url,
            timeout_seconds=config.http_timeout_seconds,
            max_bytes=config.max_feed_bytes,
            user_agent=config.user_agent,
            client=client,
        )
    except ExporterError as exc:
        observe_cycle(
            duration_seconds=time.monotonic() - started,
            finished_at=time.time(),
            ok=False,
            error=str(exc),
        )
        raise


def observed_crawl(
    build_id: str,
    *,
    config: ExporterConfig,
    publisher: MetricPublisher,
    client: Optional[httpx.Client] = None,
    should_stop: Callable[[], bool] = lambda: False,
) -> CycleResult:
    """
    crawl_and_publish() plus self-metrics bookkeeping.
    """
    started = time.monotonic()
    result = crawl_and_publish(
        build_id,
        config=config,
        publisher=publisher,
        client=client,
        should_stop=should_stop,
    )
    observe_cycle(
        duration_seconds=time.monotonic() - started,
        finished_at=time.time(),
        ok=True,
        build_id=build_id,
        artifacts_published=result.artifacts_published,
        artifacts_failed=result.artifacts_failed,
        pages_failed=result.pages_failed,
    )
    return result


__all__ = [
    "CycleResult",
    "page_fetcher",
    "process_artifact",
    "crawl_and_publish",
    "locate_latest_build",
    "observed_crawl",
    "run_cycle",
]
