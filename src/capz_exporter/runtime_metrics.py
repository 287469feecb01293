from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Optional


@dataclass
class _ExporterMetrics:
    lock: Lock = field(default_factory=Lock)

    cycles: int = 0
    cycle_errors: int = 0

    artifacts_published: int = 0
    artifacts_failed: int = 0
    pages_failed: int = 0

    last_success_timestamp: float = 0.0
    last_cycle_duration_seconds: float = 0.0
    latest_build_id: Optional[str] = None
    last_error: Optional[str] = None


EXPORTER_METRICS = _ExporterMetrics()


def observe_cycle(
    *,
    duration_seconds: float,
    finished_at: float,
    ok: bool,
    build_id: Optional[str] = None,
    artifacts_published: int = 0,
    artifacts_failed: int = 0,
    pages_failed: int = 0,
    error: Optional[str] = None,
) -> None:
    """
    Record the outcome of one sampling cycle.

    These counters are per-process and reset on restart.
    """
    m = EXPORTER_METRICS
    with m.lock:
        m.cycles += 1
        m.last_cycle_duration_seconds = float(duration_seconds)
        m.artifacts_published += artifacts_published
        m.artifacts_failed += artifacts_failed
        m.pages_failed += pages_failed
        if ok:
            m.last_success_timestamp = float(finished_at)
            m.last_error = None
            if build_id:
                m.latest_build_id = build_id
        else:
            m.cycle_errors += 1
            m.last_error = error


def snapshot_status() -> dict[str, object]:
    m = EXPORTER_METRICS
    with m.lock:
        return {
            "cycles": m.cycles,
            "cycleErrors": m.cycle_errors,
            "latestBuildId": m.latest_build_id,
            "lastSuccessTimestamp": m.last_success_timestamp or None,
            "lastError": m.last_error,
        }


def reset_exporter_metrics() -> None:
    m = EXPORTER_METRICS
    with m.lock:
        m.cycles = 0
        m.cycle_errors = 0
        m.artifacts_published = 0
        m.artifacts_failed = 0
        m.pages_failed = 0
        m.last_success_timestamp = 0.0
        m.last_cycle_duration_seconds = 0.0
        m.latest_build_id = None
        m.last_error = None


def render_exporter_metrics_prometheus() -> list[str]:
    """
    Render exporter self-metrics in Prometheus text exposition format.
    """
    m = EXPORTER_METRICS
    with m.lock:
        lines = []

        lines.append("# HELP capz_exporter_cycles_total Sampling cycles run")
        lines.append("# TYPE capz_exporter_cycles_total counter")
        lines.append(f"capz_exporter_cycles_total {m.cycles}")

        lines.append("# HELP capz_exporter_cycle_errors_total Sampling cycles that failed before publishing")
        lines.append("# TYPE capz_exporter_cycle_errors_total counter")
        lines.append(f"capz_exporter_cycle_errors_total {m.cycle_errors}")

        lines.append("# HELP capz_exporter_artifacts_published_total Artifacts fetched, parsed and published")
        lines.append("# TYPE capz_exporter_artifacts_published_total counter")
        lines.append(f"capz_exporter_artifacts_published_total {m.artifacts_published}")

        lines.append("# HELP capz_exporter_artifacts_failed_total Artifacts skipped after a fetch or parse error")
        lines.append("# TYPE capz_exporter_artifacts_failed_total counter")
        lines.append(f"capz_exporter_artifacts_failed_total {m.artifacts_failed}")

        lines.append("# HELP capz_exporter_pages_failed_total Listing pages that could not be fetched")
        lines.append("# TYPE capz_exporter_pages_failed_total counter")
        lines.append(f"capz_exporter_pages_failed_total {m.pages_failed}")

        lines.append(
            "# HELP capz_exporter_last_success_timestamp_seconds Unix time of the last successful cycle"
        )
        lines.append("# TYPE capz_exporter_last_success_timestamp_seconds gauge")
        lines.append(f"capz_exporter_last_success_timestamp_seconds {m.last_success_timestamp}")

        lines.append("# HELP capz_exporter_last_cycle_duration_seconds Duration of the last cycle")
        lines.append("# TYPE capz_exporter_last_cycle_duration_seconds gauge")
        lines.append(f"capz_exporter_last_cycle_duration_seconds {m.last_cycle_duration_seconds}")

        if m.latest_build_id:
            lines.append("# HELP capz_exporter_latest_build_info Build currently exported")
            lines.append("# TYPE capz_exporter_latest_build_info gauge")
            lines.append(f'capz_exporter_latest_build_info{{buildID="{m.latest_build_id}"}} 1')

        return lines


__all__ = [
    "observe_cycle",
    "snapshot_status",
    "reset_exporter_metrics",
    "render_exporter_metrics_prometheus",
]
