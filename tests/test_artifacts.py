from __future__ import annotations

import json

import pytest

from capz_exporter.artifacts import (
    API_AVAILABILITY,
    POD_STARTUP_LATENCY,
    artifact_kind,
    parse_api_availability,
    parse_pod_startup_latency,
)
from capz_exporter.errors import ArtifactParseError


def _dump(doc: object) -> bytes:
    return json.dumps(doc).encode("utf-8")


def test_artifact_kind_by_marker() -> None:
    assert artifact_kind("PodStartupLatency_PodStartupLatency_load_12345.json") == POD_STARTUP_LATENCY
    assert artifact_kind("APIAvailability_APIAvailability_load_67890.json") == API_AVAILABILITY
    assert artifact_kind("PodStartupLatency_PodStartupLatency_load_12345.txt") is None
    assert artifact_kind("junit_01.xml") is None
    assert artifact_kind("build-log.txt") is None


def test_pod_startup_latency_items_become_samples() -> None:
    raw = _dump(
        {
            "version": "v1",
            "dataItems": [
                {
                    "data": {"Perc50": 1.2, "Perc90": 2, "Perc99": 3.4},
                    "unit": "ms",
                    "labels": {"Metric": "pod_startup"},
                },
                {
                    "data": {"Perc50": 0.5},
                    "unit": "ms",
                    "labels": {"Metric": "create_to_schedule", "Extra": "ignored"},
                },
            ],
            "somethingNew": {"nested": True},
        }
    )
    samples = parse_pod_startup_latency(raw)
    assert [s.metric for s in samples] == ["pod_startup", "create_to_schedule"]
    assert samples[0].percentiles == {"Perc50": 1.2, "Perc90": 2.0, "Perc99": 3.4}
    assert samples[0].unit == "ms"


def test_any_numeric_data_key_is_kept_and_non_numeric_skipped() -> None:
    raw = _dump(
        {
            "dataItems": [
                {
                    "data": {"Perc95": 7, "Perc100": 9.5, "note": "n/a", "valid": True, "missing": None},
                    "labels": {"Metric": "run_to_watch"},
                }
            ]
        }
    )
    (sample,) = parse_pod_startup_latency(raw)
    assert sample.percentiles == {"Perc95": 7.0, "Perc100": 9.5}


@pytest.mark.parametrize(
    "doc",
    [
        {"version": "v1"},
        {"dataItems": "nope"},
        {"dataItems": [{"data": [1, 2, 3], "labels": {"Metric": "pod_startup"}}]},
        {"dataItems": [{"data": {"Perc50": 1.0}}]},
        {"dataItems": [{"data": {"Perc50": 1.0}, "labels": {}}]},
        {"dataItems": [{"data": {"Perc50": 1.0}, "labels": {"Metric": ""}}]},
        {"dataItems": ["not-an-object"]},
    ],
)
def test_malformed_pod_startup_latency_raises(doc: object) -> None:
    with pytest.raises(ArtifactParseError):
        parse_pod_startup_latency(_dump(doc), artifact="PodStartupLatency_x_load_1.json")


def test_invalid_json_raises_parse_error_with_artifact_name() -> None:
    with pytest.raises(ArtifactParseError) as excinfo:
        parse_pod_startup_latency(b"{not json", artifact="PodStartupLatency_x_load_1.json")
    assert excinfo.value.artifact == "PodStartupLatency_x_load_1.json"
    assert "PodStartupLatency_x_load_1.json" in str(excinfo.value)


def test_api_availability_cluster_and_hosts() -> None:
    raw = _dump(
        {
            "clusterMetrics": {"availabilityPercentage": 99.95, "longestUnavailablePeriod": "3s"},
            "hostMetrics": [
                {"IP": "10.0.0.4", "availabilityPercentage": 100, "longestUnavailablePeriod": "0s"},
                {"IP": "10.0.0.5", "availabilityPercentage": 99.9, "longestUnavailablePeriod": "3s"},
            ],
        }
    )
    result = parse_api_availability(raw)
    assert result.cluster_metrics.availability_percentage == 99.95
    assert result.cluster_metrics.longest_unavailable_period == "3s"
    assert [h.ip for h in result.host_metrics] == ["10.0.0.4", "10.0.0.5"]


def test_api_availability_host_metrics_are_optional() -> None:
    result = parse_api_availability(_dump({"clusterMetrics": {"availabilityPercentage": 100}}))
    assert result.cluster_metrics.availability_percentage == 100.0
    assert result.cluster_metrics.longest_unavailable_period is None
    assert result.host_metrics == []


@pytest.mark.parametrize(
    "doc",
    [
        {},
        {"clusterMetrics": {}},
        {"clusterMetrics": {"availabilityPercentage": "high"}},
        {"clusterMetrics": {"availabilityPercentage": "99.9"}},
        {"clusterMetrics": {"availabilityPercentage": True}},
        {"clusterMetrics": {"availabilityPercentage": None}},
        {"clusterMetrics": []},
    ],
)
def test_malformed_api_availability_raises(doc: object) -> None:
    with pytest.raises(ArtifactParseError):
        parse_api_availability(_dump(doc))


@pytest.mark.parametrize(
    "hosts",
    [
        None,
        "n/a",
        [{"availabilityPercentage": 100}],
        [{"IP": None, "availabilityPercentage": "high", "longestUnavailablePeriod": 3}],
    ],
)
def test_api_availability_tolerates_partial_host_metrics(hosts: object) -> None:
    raw = _dump({"clusterMetrics": {"availabilityPercentage": 99.95}, "hostMetrics": hosts})
    result = parse_api_availability(raw)
    assert result.cluster_metrics.availability_percentage == 99.95
    for host in result.host_metrics:
        assert host.ip is None


def test_api_availability_host_fields_default_to_none() -> None:
    raw = _dump({"clusterMetrics": {"availabilityPercentage": 99.0}, "hostMetrics": [{}, "junk"]})
    (host,) = parse_api_availability(raw).host_metrics
    assert host.ip is None
    assert host.availability_percentage is None
    assert host.longest_unavailable_period is None


def test_api_availability_null_longest_period_is_tolerated() -> None:
    raw = _dump({"clusterMetrics": {"availabilityPercentage": 99.5, "longestUnavailablePeriod": None}})
    result = parse_api_availability(raw)
    assert result.cluster_metrics.availability_percentage == 99.5
    assert result.cluster_metrics.longest_unavailable_period is None


def test_api_availability_integer_percentage_is_accepted() -> None:
    result = parse_api_availability(_dump({"clusterMetrics": {"availabilityPercentage": 100}}))
    assert result.cluster_metrics.availability_percentage == 100.0


@pytest.mark.parametrize("unit", [None, 5, {"ms": True}])
def test_pod_startup_optional_fields_are_tolerated(unit: object) -> None:
    raw = _dump(
        {
            "version": None,
            "dataItems": [{"data": {"Perc50": 1.5}, "unit": unit, "labels": {"Metric": "pod_startup"}}],
        }
    )
    (sample,) = parse_pod_startup_latency(raw)
    assert sample.percentiles == {"Perc50": 1.5}
    assert sample.unit == ""
