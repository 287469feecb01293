from __future__ import annotations

import pytest

from capz_exporter.artifacts import API_AVAILABILITY, POD_STARTUP_LATENCY
from capz_exporter.crawler import (
    CrawlContext,
    build_artifacts_url,
    cluster_from_path,
    crawl,
    extract_links,
)
from capz_exporter.errors import PageFetchError

BUILD = "1700000000123456789"
JOB = "ci-kubernetes-e2e-azure-scalability"
GCSWEB = "https://gcsweb.k8s.io"
PREFIX = f"/gcs/kubernetes-ci-logs/logs/{JOB}/{BUILD}"
STORAGE = f"https://storage.googleapis.com/kubernetes-ci-logs/logs/{JOB}/{BUILD}"
SEED = f"{GCSWEB}{PREFIX}/artifacts/"
CLUSTERS = f"{GCSWEB}{PREFIX}/artifacts/clusters/"

POD_FILE = "PodStartupLatency_PodStartupLatency_load_2024-01-01T000000Z.json"
API_FILE = "APIAvailability_APIAvailability_load_2024-01-01T000000Z.json"


def _page(*hrefs: str) -> str:
    items = "\n".join(f'<li><a href="{href}">{href.rstrip("/").rsplit("/", 1)[-1]}</a></li>' for href in hrefs)
    return f"<html><body><h1>listing</h1><ul>{items}</ul></body></html>"


# Files are listed before the clusters/ directory, as gcsweb does when
# sorting alphabetically by upper-case names first.
ARTIFACTS_PAGE = _page(
    f"{PREFIX}/",
    f"{STORAGE}/artifacts/{API_FILE}",
    f"{STORAGE}/artifacts/{POD_FILE}",
    f"{STORAGE}/artifacts/junit_01.xml",
    f"{PREFIX}/artifacts/clusters/",
)

CLUSTERS_PAGE = _page(
    f"{PREFIX}/artifacts/",
    f"{PREFIX}/artifacts/clusters/bootstrap/",
    f"{PREFIX}/artifacts/clusters/capz-conf-abc123/",
)


def _fetcher(pages: dict[str, str], visited: list[str] | None = None):
    def fetch_page(url: str) -> str:
        if visited is not None:
            visited.append(url)
        if url not in pages:
            raise PageFetchError(f"GET {url} failed with status 404.")
        return pages[url]

    return fetch_page


def test_build_artifacts_url() -> None:
    assert build_artifacts_url("https://gcsweb.k8s.io/gcs/kubernetes-ci-logs/logs/", JOB, BUILD) == SEED


def test_extract_links_resolves_relative_hrefs() -> None:
    html = '<a href="/x/y/">y</a><a href="z.json#frag">z</a><a href="#top">top</a><a>no href</a><a href="mailto:a@b">m</a>'
    assert extract_links(html, "https://host.example/base/") == [
        "https://host.example/x/y/",
        "https://host.example/base/z.json",
    ]


def test_cluster_from_path() -> None:
    assert cluster_from_path("/a/artifacts/clusters/capz-abc/", "capz-") == "capz-abc"
    assert cluster_from_path("/a/artifacts/clusters/capz-abc/logs/x.json", "capz-") == "capz-abc"
    assert cluster_from_path("/a/artifacts/clusters/bootstrap/", "capz-") is None
    assert cluster_from_path("/a/artifacts/x.json", "capz-") is None


def test_artifacts_listed_before_cluster_dir_get_cluster_label() -> None:
    visited: list[str] = []
    links = list(
        crawl(SEED, build_id=BUILD, fetch_page=_fetcher({SEED: ARTIFACTS_PAGE, CLUSTERS: CLUSTERS_PAGE}, visited))
    )

    assert visited == [SEED, CLUSTERS]
    by_kind = {link.kind: link for link in links}
    assert set(by_kind) == {API_AVAILABILITY, POD_STARTUP_LATENCY}
    assert by_kind[POD_STARTUP_LATENCY].url == f"{STORAGE}/artifacts/{POD_FILE}"
    assert by_kind[POD_STARTUP_LATENCY].file_name == POD_FILE
    for link in links:
        assert link.cluster == "capz-conf-abc123"
        assert link.build_id == BUILD


def test_artifacts_without_cluster_dir_get_empty_cluster() -> None:
    page = _page(f"{STORAGE}/artifacts/{POD_FILE}")
    (link,) = crawl(SEED, build_id=BUILD, fetch_page=_fetcher({SEED: page}))
    assert link.cluster == ""


def test_failed_clusters_page_does_not_abort_crawl() -> None:
    ctx = CrawlContext(build_id=BUILD, cluster_prefix="capz-")
    links = list(crawl(SEED, build_id=BUILD, fetch_page=_fetcher({SEED: ARTIFACTS_PAGE}), context=ctx))
    assert len(links) == 2
    assert all(link.cluster == "" for link in links)
    assert ctx.pages_fetched == 1
    assert ctx.pages_failed == 1


def test_failed_seed_page_yields_nothing() -> None:
    assert list(crawl(SEED, build_id=BUILD, fetch_page=_fetcher({}))) == []


def test_artifact_under_cluster_directory_keeps_own_cluster() -> None:
    nested = f"{STORAGE}/artifacts/clusters/capz-second/{POD_FILE}"
    page = _page(f"{PREFIX}/artifacts/clusters/capz-first/", nested)
    (link,) = crawl(SEED, build_id=BUILD, fetch_page=_fetcher({SEED: page}))
    assert link.cluster == "capz-second"


def test_duplicate_links_are_reported_once() -> None:
    page = _page(f"{STORAGE}/artifacts/{POD_FILE}", f"{STORAGE}/artifacts/{POD_FILE}")
    assert len(list(crawl(SEED, build_id=BUILD, fetch_page=_fetcher({SEED: page})))) == 1


def test_clusters_dir_outside_seed_is_not_followed() -> None:
    other = f"{GCSWEB}/gcs/kubernetes-ci-logs/logs/{JOB}/1/artifacts/clusters/"
    visited: list[str] = []
    list(crawl(SEED, build_id=BUILD, fetch_page=_fetcher({SEED: _page(other)}, visited)))
    assert visited == [SEED]


def test_max_pages_limits_crawl() -> None:
    visited: list[str] = []
    list(
        crawl(
            SEED,
            build_id=BUILD,
            fetch_page=_fetcher({SEED: ARTIFACTS_PAGE, CLUSTERS: CLUSTERS_PAGE}, visited),
            max_pages=1,
        )
    )
    assert visited == [SEED]


@pytest.mark.parametrize("prefix", ["capz-", "aks-"])
def test_cluster_prefix_is_configurable(prefix: str) -> None:
    seed_page = _page(f"{STORAGE}/artifacts/{POD_FILE}", f"{PREFIX}/artifacts/clusters/")
    clusters_page = _page(f"{PREFIX}/artifacts/clusters/{prefix}one/")
    fetch_page = _fetcher({SEED: seed_page, CLUSTERS: clusters_page})

    (link,) = list(crawl(SEED, build_id=BUILD, fetch_page=fetch_page, cluster_prefix=prefix))

    assert link.cluster == f"{prefix}one"
