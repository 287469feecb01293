from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from .artifacts import ApiAvailabilityResult, PodStartupSample
from .crawler import ArtifactLink
from .errors import ArtifactParseError, MetricRegistrationConflictError
from .registry import GaugeRegistry

logger = logging.getLogger("capz_exporter.publisher")

POD_STARTUP_LABELS = ("perc", "cluster", "buildID")
API_AVAILABILITY_LABELS = ("cluster", "buildID")
API_AVAILABILITY_METRIC = "APIServerAvailabilityPercentage"


def family_name_from_file_name(file_name: str) -> str:
    """
    Derive a metric subsystem from a ClusterLoader2 result file name.

    Relies on the upstream naming convention
    <Measurement>_<Identifier>_<suffix>_<timestamp>.json: the last two
    underscore-separated segments are dropped, e.g.
    PodStartupLatency_PodStartupLatency_load_2024-01-01T00:00:00Z.json
    becomes PodStartupLatency_PodStartupLatency. Names with fewer than three
    segments do not follow the convention and are rejected.
    """
    parts = file_name.split("_")
    if len(parts) < 3:
        raise ArtifactParseError(
            file_name, "file name does not follow <Measurement>_<Identifier>_<suffix>_<timestamp>"
        )
    return "_".join(parts[:-2])


class MetricPublisher:
    """
    Maps parsed results onto gauges in a GaugeRegistry.
    """

    def __init__(self, registry: GaugeRegistry, *, namespace: str = "capz") -> None:
        self.registry = registry
        self.namespace = namespace

    def publish(
        self,
        name: str,
        *,
        subsystem: str,
        label_names: Sequence[str],
        labels: Mapping[str, str],
        value: float,
        help_text: Optional[str] = None,
    ) -> None:
        family = self.registry.register(
            name,
            tuple(label_names),
            namespace=self.namespace,
            subsystem=subsystem,
            help_text=help_text,
        )
        family.set(labels, value)

    def publish_pod_startup(self, link: ArtifactLink, samples: Sequence[PodStartupSample]) -> int:
        """
        Publish one gauge family per data item and one series per percentile.

        A data item without numeric values still registers its family, so
        the family count always matches the item count.
        """
        subsystem = family_name_from_file_name(link.file_name)
        written = 0
        for sample in samples:
            try:
                family = self.registry.register(
                    sample.metric,
                    POD_STARTUP_LABELS,
                    namespace=self.namespace,
                    subsystem=subsystem,
                )
            except MetricRegistrationConflictError as exc:
                logger.error("Skipping metric %s from %s: %s", sample.metric, link.file_name, exc)
                continue
            for perc, value in sample.percentiles.items():
                family.set({"perc": perc, "cluster": link.cluster, "buildID": link.build_id}, value)
                written += 1
        return written

    def publish_api_availability(self, link: ArtifactLink, result: ApiAvailabilityResult) -> int:
        subsystem = family_name_from_file_name(link.file_name)
        try:
            self.publish(
                API_AVAILABILITY_METRIC,
                subsystem=subsystem,
                label_names=API_AVAILABILITY_LABELS,
                labels={"cluster": link.cluster, "buildID": link.build_id},
                value=result.cluster_metrics.availability_percentage,
            )
        except MetricRegistrationConflictError as exc:
            logger.error("Skipping %s from %s: %s", API_AVAILABILITY_METRIC, link.file_name, exc)
            return 0
        return 1


__all__ = [
    "MetricPublisher",
    "family_name_from_file_name",
    "POD_STARTUP_LABELS",
    "API_AVAILABILITY_LABELS",
    "API_AVAILABILITY_METRIC",
]
