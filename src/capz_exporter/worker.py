from __future__ import annotations

import logging
import threading
from queue import Empty, Full, Queue
from typing import Callable, Optional

import httpx

from .config import ExporterConfig
from .errors import ExporterError
from .http_fetch import new_client
from .pipeline import CycleResult, locate_latest_build, observed_crawl, run_cycle
from .publisher import MetricPublisher
from .registry import GaugeRegistry

"""
capz_exporter.worker - sampling threads

Two daemon threads cooperate through a single-slot queue:

    BuildLocatorThread  looks up the latest successful build every
                        poll interval and hands its ID over
    CrawlDriverThread   crawls each handed-over build and publishes results

The hand-off holds at most one build ID; a newer ID replaces one that has not
been picked up yet. The same ID is handed over again every interval so gauges
are refreshed even when no new build landed.
"""

logger = logging.getLogger("capz_exporter.worker")

# How often the crawl driver re-checks the stop flag while idle.
HANDOFF_POLL_SECONDS = 1.0

ClientFactory = Callable[[ExporterConfig], httpx.Client]


def _default_client_factory(config: ExporterConfig) -> httpx.Client:
    return new_client(timeout_seconds=config.http_timeout_seconds, user_agent=config.user_agent)


class Sampler:
    """Runs the locator and crawl driver threads until stop() is called."""

    def __init__(
        self,
        config: ExporterConfig,
        registry: GaugeRegistry,
        *,
        client_factory: ClientFactory = _default_client_factory,
    ) -> None:
        self.config = config
        self.registry = registry
        self.publisher = MetricPublisher(registry, namespace=config.metric_namespace)
        self.client_factory = client_factory
        self.stop_event = threading.Event()
        self.builds: Queue[str] = Queue(maxsize=1)
        self.last_result: Optional[CycleResult] = None
        self._threads: list[threading.Thread] = []

    def hand_off(self, build_id: str) -> None:
        while True:
            try:
                self.builds.put_nowait(build_id)
                return
            except Full:
                try:
                    stale = self.builds.get_nowait()
                except Empty:
                    continue
                logger.debug("Replacing unconsumed build %s with %s.", stale, build_id)

    def locate_once(self) -> None:
        with self.client_factory(self.config) as client:
            try:
                build_id = locate_latest_build(self.config, client=client)
            except ExporterError as exc:
                logger.warning("Error getting latest build ID: %s", exc)
                return
        self.hand_off(build_id)

    def crawl_once(self, build_id: str) -> CycleResult:
        with self.client_factory(self.config) as client:
            result = observed_crawl(
                build_id,
                config=self.config,
                publisher=self.publisher,
                client=client,
                should_stop=self.stop_event.is_set,
            )
        self.last_result = result
        logger.info(
            "Build %s: %s artifacts published, %s failed.",
            build_id,
            result.artifacts_published,
            result.artifacts_failed,
        )
        return result

    def _locate_loop(self) -> None:
        logger.info(
            "Build locator starting (job=%s, interval=%ss).",
            self.config.job_name,
            self.config.poll_interval_seconds,
        )
        while not self.stop_event.is_set():
            try:
                self.locate_once()
            except Exception as exc:  # pragma: no cover
                logger.error("Unexpected error in build locator iteration: %s", exc)
            self.stop_event.wait(self.config.poll_interval_seconds)
        logger.info("Build locator stopped.")

    def _crawl_loop(self) -> None:
        while not self.stop_event.is_set():
            try:
                build_id = self.builds.get(timeout=HANDOFF_POLL_SECONDS)
            except Empty:
                continue
            try:
                self.crawl_once(build_id)
            except Exception as exc:  # pragma: no cover
                logger.error("Unexpected error crawling build %s: %s", build_id, exc)
        logger.info("Crawl driver stopped.")

    def start(self) -> None:
        if self._threads:
            return
        self.stop_event.clear()
        self._threads = [
            threading.Thread(target=self._locate_loop, name="BuildLocatorThread", daemon=True),
            threading.Thread(target=self._crawl_loop, name="CrawlDriverThread", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float = 30.0) -> None:
        """
        Ask both threads to finish and wait for them.

        An in-flight crawl stops before its next artifact.
        """
        self.stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("%s did not stop within %ss.", thread.name, timeout)
        self._threads = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)


def run_sampler_loop(
    config: ExporterConfig,
    registry: GaugeRegistry,
    *,
    run_once: bool = False,
) -> Optional[CycleResult]:
    """
    Run the sampler in the foreground.

    Args:
        run_once: If True, run a single cycle synchronously and return its result.
    """
    if run_once:
        with _default_client_factory(config) as client:
            try:
                return run_cycle(config, registry, client=client)
            except ExporterError as exc:
                logger.error("Sampling cycle failed: %s", exc)
                return None

    sampler = Sampler(config, registry)
    sampler.start()
    try:
        while sampler.running:
            sampler.stop_event.wait(HANDOFF_POLL_SECONDS)
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.info("Sampler interrupted by user; shutting down.")
    finally:
        sampler.stop()
    return sampler.last_result


__all__ = ["Sampler", "run_sampler_loop"]
