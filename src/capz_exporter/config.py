from __future__ import annotations

import os
from dataclasses import dataclass

# === Upstream CI job ===

# The Prow job whose ClusterLoader2 results are exported.
DEFAULT_JOB_NAME = "ci-kubernetes-e2e-azure-scalability"

# Prow job-status feed. The omitted fields are large and never read.
DEFAULT_FEED_URL = "https://prow.k8s.io/prowjobs.js?omit=annotations,labels,decoration_config,pod_spec"

# Root of the gcsweb listing for CI logs. A build's artifacts live at
#   <root>/<job>/<build_id>/artifacts/
DEFAULT_LISTING_ROOT = "https://gcsweb.k8s.io/gcs/kubernetes-ci-logs/logs"

# Directory names under artifacts/clusters/ that carry this prefix name the
# workload cluster the test ran against.
DEFAULT_CLUSTER_PREFIX = "capz-"

# === Exposed metrics ===

DEFAULT_METRIC_NAMESPACE = "capz"

# === Scheduling and HTTP limits ===

DEFAULT_POLL_INTERVAL_SECONDS = 3600
DEFAULT_HTTP_TIMEOUT_SECONDS = 30
# prowjobs.js lists every recent job across all of Prow and is large.
DEFAULT_MAX_FEED_BYTES = 200_000_000
DEFAULT_MAX_ARTIFACT_BYTES = 20_000_000
DEFAULT_MAX_PAGES = 200
DEFAULT_USER_AGENT = "capz-exporter/0.1 (+https://github.com/kubernetes-sigs/cluster-api-provider-azure)"

# === Metrics listener ===

DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 8080


@dataclass
class ExporterConfig:
    """
    Resolved exporter settings.

    Built once per process by get_exporter_config(); the CLI may override
    individual fields after that.
    """

    job_name: str = DEFAULT_JOB_NAME
    feed_url: str = DEFAULT_FEED_URL
    listing_root: str = DEFAULT_LISTING_ROOT
    cluster_prefix: str = DEFAULT_CLUSTER_PREFIX
    metric_namespace: str = DEFAULT_METRIC_NAMESPACE
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    http_timeout_seconds: float = float(DEFAULT_HTTP_TIMEOUT_SECONDS)
    max_feed_bytes: int = DEFAULT_MAX_FEED_BYTES
    max_artifact_bytes: int = DEFAULT_MAX_ARTIFACT_BYTES
    max_pages: int = DEFAULT_MAX_PAGES
    user_agent: str = DEFAULT_USER_AGENT
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = DEFAULT_LISTEN_PORT


def _get_str(name: str, default: str) -> str:
    raw = os.environ.get(name, default)
    return raw.strip() or default


def _get_int(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        value = default
    return max(minimum, min(value, maximum))


def get_job_name() -> str:
    return _get_str("CAPZ_EXPORTER_JOB_NAME", DEFAULT_JOB_NAME)


def get_feed_url() -> str:
    return _get_str("CAPZ_EXPORTER_FEED_URL", DEFAULT_FEED_URL)


def get_listing_root() -> str:
    """
    Return the gcsweb listing root without a trailing slash.
    """
    return _get_str("CAPZ_EXPORTER_LISTING_ROOT", DEFAULT_LISTING_ROOT).rstrip("/")


def get_cluster_prefix() -> str:
    return _get_str("CAPZ_EXPORTER_CLUSTER_PREFIX", DEFAULT_CLUSTER_PREFIX)


def get_metric_namespace() -> str:
    return _get_str("CAPZ_EXPORTER_METRIC_NAMESPACE", DEFAULT_METRIC_NAMESPACE)


def get_poll_interval_seconds() -> int:
    """
    Return the number of seconds between build lookups.

    Clamped to [10, 86400] so a typo cannot hammer Prow or stall forever.
    """
    return _get_int(
        "CAPZ_EXPORTER_POLL_INTERVAL_SECONDS",
        DEFAULT_POLL_INTERVAL_SECONDS,
        minimum=10,
        maximum=86_400,
    )


def get_http_timeout_seconds() -> float:
    """
    Return the per-request HTTP timeout (seconds).
    """
    raw = os.environ.get(
        "CAPZ_EXPORTER_HTTP_TIMEOUT_SECONDS",
        str(DEFAULT_HTTP_TIMEOUT_SECONDS),
    ).strip()
    try:
        value = float(raw)
    except ValueError:
        value = float(DEFAULT_HTTP_TIMEOUT_SECONDS)
    return max(1.0, min(value, 300.0))


def get_max_feed_bytes() -> int:
    return _get_int(
        "CAPZ_EXPORTER_MAX_FEED_BYTES",
        DEFAULT_MAX_FEED_BYTES,
        minimum=1_000_000,
        maximum=2_000_000_000,
    )


def get_max_artifact_bytes() -> int:
    return _get_int(
        "CAPZ_EXPORTER_MAX_ARTIFACT_BYTES",
        DEFAULT_MAX_ARTIFACT_BYTES,
        minimum=10_000,
        maximum=500_000_000,
    )


def get_max_pages() -> int:
    """
    Return the maximum number of listing pages fetched per crawl.
    """
    return _get_int("CAPZ_EXPORTER_MAX_PAGES", DEFAULT_MAX_PAGES, minimum=1, maximum=10_000)


def get_user_agent() -> str:
    return _get_str("CAPZ_EXPORTER_USER_AGENT", DEFAULT_USER_AGENT)


def get_listen_host() -> str:
    return _get_str("CAPZ_EXPORTER_HOST", DEFAULT_LISTEN_HOST)


def get_listen_port() -> int:
    return _get_int("CAPZ_EXPORTER_PORT", DEFAULT_LISTEN_PORT, minimum=1, maximum=65_535)


def get_exporter_config() -> ExporterConfig:
    """
    Return the exporter configuration, honouring environment overrides.
    """
    return ExporterConfig(
        job_name=get_job_name(),
        feed_url=get_feed_url(),
        listing_root=get_listing_root(),
        cluster_prefix=get_cluster_prefix(),
        metric_namespace=get_metric_namespace(),
        poll_interval_seconds=get_poll_interval_seconds(),
        http_timeout_seconds=get_http_timeout_seconds(),
        max_feed_bytes=get_max_feed_bytes(),
        max_artifact_bytes=get_max_artifact_bytes(),
        max_pages=get_max_pages(),
        user_agent=get_user_agent(),
        listen_host=get_listen_host(),
        listen_port=get_listen_port(),
    )


__all__ = ["ExporterConfig", "get_exporter_config"]
