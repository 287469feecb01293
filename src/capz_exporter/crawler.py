from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from .artifacts import artifact_kind
from .errors import PageFetchError

logger = logging.getLogger("capz_exporter.crawler")

CLUSTERS_SEGMENT = "artifacts/clusters/"

PageFetcher = Callable[[str], str]


@dataclass(frozen=True)
class ArtifactLink:
    url: str
    file_name: str
    kind: str
    cluster: str
    build_id: str


@dataclass
class CrawlContext:
    """
    State gathered while walking one build's listing.

    Owned by a single crawl() call; never shared between crawls.
    """

    build_id: str
    cluster_prefix: str
    clusters: list[str] = field(default_factory=list)
    visited: set[str] = field(default_factory=set)
    pending: dict[str, tuple[str, str, Optional[str]]] = field(default_factory=dict)
    pages_fetched: int = 0
    pages_failed: int = 0

    @property
    def cluster(self) -> str:
        return self.clusters[0] if self.clusters else ""

    def note_cluster(self, name: str) -> None:
        if name in self.clusters:
            return
        if self.clusters:
            logger.warning(
                "Build %s lists more than one cluster (%s, %s); labelling with %s.",
                self.build_id,
                self.clusters[0],
                name,
                self.clusters[0],
            )
        else:
            logger.info("Got cluster name for build %s: %s", self.build_id, name)
        self.clusters.append(name)


def build_artifacts_url(listing_root: str, job_name: str, build_id: str) -> str:
    return f"{listing_root.rstrip('/')}/{job_name}/{build_id}/artifacts/"


def _strip_fragment(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


def _last_segment(path: str) -> str:
    trimmed = path.rstrip("/")
    return trimmed.rsplit("/", 1)[-1] if trimmed else ""


def cluster_from_path(path: str, cluster_prefix: str) -> Optional[str]:
    """
    Return the cluster directory name for a path under artifacts/clusters/.

    Both the directory itself (".../clusters/capz-abc/") and anything nested
    beneath it resolve to "capz-abc".
    """
    idx = path.find(CLUSTERS_SEGMENT)
    if idx < 0:
        return None
    remainder = path[idx + len(CLUSTERS_SEGMENT):]
    name = remainder.split("/", 1)[0]
    if name and name.startswith(cluster_prefix):
        return name
    return None


def extract_links(html: str, base_url: str) -> list[str]:
    """
    Return absolute URLs for every <a href> on a listing page, in page order.
    """
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for a in soup.find_all("a", href=True):
        href_value = a.get("href")
        if not isinstance(href_value, str):
            continue
        href = href_value.strip()
        if not href or href.startswith(("#", "?", "mailto:", "javascript:")):
            continue
        abs_url = urljoin(base_url, href)
        if urlsplit(abs_url).scheme not in ("http", "https"):
            continue
        links.append(_strip_fragment(abs_url))
    return links


def _classify(link: str, ctx: CrawlContext, seed_url: str, frontier: deque[str]) -> None:
    path = urlsplit(link).path

    if path.endswith(CLUSTERS_SEGMENT):
        if link.startswith(seed_url) and link not in ctx.visited:
            ctx.visited.add(link)
            frontier.append(link)
        return

    if CLUSTERS_SEGMENT in path:
        name = _last_segment(path)
        if name.startswith(ctx.cluster_prefix):
            ctx.note_cluster(name)

    file_name = _last_segment(path)
    kind = artifact_kind(file_name)
    if kind is None or link in ctx.pending:
        return
    ctx.pending[link] = (file_name, kind, cluster_from_path(path, ctx.cluster_prefix))


def crawl(
    seed_url: str,
    *,
    build_id: str,
    fetch_page: PageFetcher,
    cluster_prefix: str = "capz-",
    max_pages: int = 200,
    context: Optional[CrawlContext] = None,
) -> Iterator[ArtifactLink]:
    """
    Walk a gcsweb listing breadth-first and yield the result artifacts found.

    Artifacts are yielded only once the whole listing has been read, so each
    one carries the cluster name no matter where in the tree the
    clusters/<name>/ entry appeared relative to the file. An artifact nested
    under clusters/<name>/ keeps that name; others get the first cluster seen
    in the crawl, or "" if none was found.

    fetch_page(url) returns page HTML and raises PageFetchError on failure;
    a failed page is logged and its subtree skipped. Pass a fresh context to
    read the crawl's page counters afterwards.
    """
    ctx = context or CrawlContext(build_id=build_id, cluster_prefix=cluster_prefix)
    frontier: deque[str] = deque([seed_url])
    ctx.visited.add(seed_url)

    while frontier:
        if ctx.pages_fetched + ctx.pages_failed >= max_pages:
            logger.warning(
                "Crawl of build %s stopped after %s pages; %s queued pages skipped.",
                build_id,
                max_pages,
                len(frontier),
            )
            break
        page_url = frontier.popleft()
        logger.debug("Visiting %s", page_url)
        try:
            html = fetch_page(page_url)
        except PageFetchError as exc:
            ctx.pages_failed += 1
            logger.warning("Skipping listing page %s: %s", page_url, exc)
            continue
        ctx.pages_fetched += 1

        for link in extract_links(html, page_url):
            _classify(link, ctx, seed_url, frontier)

    logger.info(
        "Crawl of build %s finished: %s pages, %s failed, %s artifacts, cluster=%r.",
        build_id,
        ctx.pages_fetched,
        ctx.pages_failed,
        len(ctx.pending),
        ctx.cluster,
    )

    for url, (file_name, kind, own_cluster) in ctx.pending.items():
        yield ArtifactLink(
            url=url,
            file_name=file_name,
            kind=kind,
            cluster=own_cluster or ctx.cluster,
            build_id=build_id,
        )


__all__ = [
    "ArtifactLink",
    "CrawlContext",
    "build_artifacts_url",
    "cluster_from_path",
    "extract_links",
    "crawl",
]
