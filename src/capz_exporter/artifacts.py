from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ArtifactParseError

"""
capz_exporter.artifacts - ClusterLoader2 result decoding

Two result files are understood:

  PodStartupLatency_*.json   {"version": ..., "dataItems": [
                                 {"data": {"Perc50": 1.2, ...},
                                  "unit": "ms",
                                  "labels": {"Metric": "pod_startup"}}]}

  APIAvailability_*.json     {"clusterMetrics": {"availabilityPercentage": 99.9,
                                                 "longestUnavailablePeriod": "0s"},
                              "hostMetrics": [{"IP": ..., ...}]}

Unknown fields are ignored, and unpublished fields (unit, version,
longestUnavailablePeriod, hostMetrics) fall back to None or [] when missing
or mistyped. Anything wrong with the published fields raises
ArtifactParseError and yields no partial result.
"""

POD_STARTUP_LATENCY = "pod_startup_latency"
API_AVAILABILITY = "api_availability"

ARTIFACT_MARKERS: dict[str, str] = {
    "PodStartupLatency": POD_STARTUP_LATENCY,
    "APIAvailability": API_AVAILABILITY,
}


def artifact_kind(file_name: str) -> Optional[str]:
    """
    Return the result kind for an artifact file name, or None if it is not one.
    """
    if not file_name.endswith(".json"):
        return None
    for marker, kind in ARTIFACT_MARKERS.items():
        if marker in file_name:
            return kind
    return None


class _ResultModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _text_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _require_number(value: Any) -> Any:
    # Lax float parsing would turn true into 1.0 and "99.9" into 99.9.
    if isinstance(value, (bool, str)):
        raise ValueError("must be a JSON number")
    return value


class PodStartupLabels(_ResultModel):
    metric: str = Field(alias="Metric", min_length=1)


class PodStartupDataItem(_ResultModel):
    data: Dict[str, Any]
    unit: Optional[str] = None
    labels: PodStartupLabels

    @field_validator("unit", mode="before")
    @classmethod
    def unit_as_text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


class PodStartupLatencyDocument(_ResultModel):
    version: Optional[str] = None
    data_items: List[PodStartupDataItem] = Field(alias="dataItems")

    @field_validator("version", mode="before")
    @classmethod
    def version_as_text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


class ClusterAvailability(_ResultModel):
    availability_percentage: float = Field(alias="availabilityPercentage")
    longest_unavailable_period: Optional[str] = Field(default=None, alias="longestUnavailablePeriod")

    @field_validator("availability_percentage", mode="before")
    @classmethod
    def percentage_is_number(cls, value: Any) -> Any:
        return _require_number(value)

    @field_validator("longest_unavailable_period", mode="before")
    @classmethod
    def period_as_text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


class HostAvailability(_ResultModel):
    """
    Per-host entry. Not exported, so every field is best-effort.
    """

    ip: Optional[str] = Field(default=None, alias="IP")
    availability_percentage: Optional[float] = Field(default=None, alias="availabilityPercentage")
    longest_unavailable_period: Optional[str] = Field(default=None, alias="longestUnavailablePeriod")

    @field_validator("ip", "longest_unavailable_period", mode="before")
    @classmethod
    def text_fields(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)

    @field_validator("availability_percentage", mode="before")
    @classmethod
    def percentage_or_none(cls, value: Any) -> Optional[float]:
        return _number_or_none(value)


class ApiAvailabilityResult(_ResultModel):
    cluster_metrics: ClusterAvailability = Field(alias="clusterMetrics")
    host_metrics: List[HostAvailability] = Field(default_factory=list, alias="hostMetrics")

    @field_validator("host_metrics", mode="before")
    @classmethod
    def hosts_or_empty(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]


@dataclass
class PodStartupSample:
    metric: str
    percentiles: dict[str, float]
    unit: str = ""


def _describe(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or "<document>"
    reason = f"{loc}: {first.get('msg', 'invalid')}"
    if len(errors) > 1:
        reason += f" (+{len(errors) - 1} more)"
    return reason


def _numeric_items(data: Dict[str, Any]) -> dict[str, float]:
    # bool is an int subclass; true/false are not measurements.
    return {
        key: float(value)
        for key, value in data.items()
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    }


def parse_pod_startup_latency(raw: bytes, *, artifact: str = "PodStartupLatency") -> list[PodStartupSample]:
    try:
        doc = PodStartupLatencyDocument.model_validate_json(raw)
    except ValidationError as exc:
        raise ArtifactParseError(artifact, _describe(exc)) from exc

    return [
        PodStartupSample(
            metric=item.labels.metric,
            percentiles=_numeric_items(item.data),
            unit=item.unit or "",
        )
        for item in doc.data_items
    ]


def parse_api_availability(raw: bytes, *, artifact: str = "APIAvailability") -> ApiAvailabilityResult:
    try:
        return ApiAvailabilityResult.model_validate_json(raw)
    except ValidationError as exc:
        raise ArtifactParseError(artifact, _describe(exc)) from exc


__all__ = [
    "POD_STARTUP_LATENCY",
    "API_AVAILABILITY",
    "artifact_kind",
    "PodStartupSample",
    "ApiAvailabilityResult",
    "parse_pod_startup_latency",
    "parse_api_availability",
]
