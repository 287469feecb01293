from __future__ import annotations

from capz_exporter.config import (
    DEFAULT_FEED_URL,
    DEFAULT_JOB_NAME,
    DEFAULT_LISTING_ROOT,
    get_exporter_config,
    get_http_timeout_seconds,
    get_listing_root,
    get_poll_interval_seconds,
)


def test_defaults_match_upstream_job() -> None:
    cfg = get_exporter_config()
    assert cfg.job_name == DEFAULT_JOB_NAME == "ci-kubernetes-e2e-azure-scalability"
    assert cfg.feed_url == DEFAULT_FEED_URL
    assert cfg.listing_root == DEFAULT_LISTING_ROOT
    assert cfg.cluster_prefix == "capz-"
    assert cfg.metric_namespace == "capz"
    assert cfg.poll_interval_seconds == 3600
    assert cfg.listen_port == 8080


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CAPZ_EXPORTER_JOB_NAME", "ci-other-job")
    monkeypatch.setenv("CAPZ_EXPORTER_PORT", "9100")
    monkeypatch.setenv("CAPZ_EXPORTER_CLUSTER_PREFIX", "aks-")
    cfg = get_exporter_config()
    assert cfg.job_name == "ci-other-job"
    assert cfg.listen_port == 9100
    assert cfg.cluster_prefix == "aks-"


def test_listing_root_trailing_slash_is_stripped(monkeypatch) -> None:
    monkeypatch.setenv("CAPZ_EXPORTER_LISTING_ROOT", "https://listing.example/logs/")
    assert get_listing_root() == "https://listing.example/logs"


def test_poll_interval_is_clamped(monkeypatch) -> None:
    monkeypatch.setenv("CAPZ_EXPORTER_POLL_INTERVAL_SECONDS", "1")
    assert get_poll_interval_seconds() == 10

    monkeypatch.setenv("CAPZ_EXPORTER_POLL_INTERVAL_SECONDS", "not-a-number")
    assert get_poll_interval_seconds() == 3600


def test_http_timeout_is_clamped(monkeypatch) -> None:
    monkeypatch.setenv("CAPZ_EXPORTER_HTTP_TIMEOUT_SECONDS", "9999")
    assert get_http_timeout_seconds() == 300.0

    monkeypatch.setenv("CAPZ_EXPORTER_HTTP_TIMEOUT_SECONDS", "2.5")
    assert get_http_timeout_seconds() == 2.5


def test_blank_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CAPZ_EXPORTER_JOB_NAME", "   ")
    assert get_exporter_config().job_name == DEFAULT_JOB_NAME
