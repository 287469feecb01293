from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from threading import Lock
from typing import Mapping, Optional

from .errors import MetricRegistrationConflictError

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")
_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_metric_name(name: str) -> str:
    cleaned = _INVALID_NAME_CHARS.sub("_", name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


def sanitize_label_name(name: str) -> str:
    cleaned = _INVALID_LABEL_CHARS.sub("_", name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


def build_full_name(namespace: str, subsystem: str, name: str) -> str:
    """
    Join namespace, subsystem and name the way Prometheus client libraries do.
    """
    parts = [part for part in (namespace, subsystem, name) if part]
    return sanitize_metric_name("_".join(parts))


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(float(value))


@dataclass
class GaugeFamily:
    """
    One gauge family: a fixed label schema and its label-tuple -> value map.

    Created only through GaugeRegistry.register(); values are guarded by the
    owning registry's lock.
    """

    full_name: str
    name: str
    help_text: str
    label_names: tuple[str, ...]
    _lock: Lock
    values: dict[tuple[str, ...], float] = field(default_factory=dict)

    def set(self, labels: Mapping[str, str], value: float) -> None:
        key = self._label_key(labels)
        with self._lock:
            self.values[key] = float(value)

    def get(self, labels: Mapping[str, str]) -> Optional[float]:
        key = self._label_key(labels)
        with self._lock:
            return self.values.get(key)

    def _label_key(self, labels: Mapping[str, str]) -> tuple[str, ...]:
        if set(labels) != set(self.label_names):
            raise ValueError(
                f"{self.full_name} expects labels {list(self.label_names)}, got {sorted(labels)}"
            )
        return tuple(str(labels[name]) for name in self.label_names)


class GaugeRegistry:
    """
    Process-wide set of gauge families.

    A family is registered at most once. Asking again with the same label
    schema returns the existing family; asking with a different schema raises
    MetricRegistrationConflictError and leaves the registry untouched.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._families: dict[str, GaugeFamily] = {}

    def register(
        self,
        name: str,
        label_names: tuple[str, ...] | list[str],
        *,
        namespace: str = "",
        subsystem: str = "",
        help_text: Optional[str] = None,
    ) -> GaugeFamily:
        full_name = build_full_name(namespace, subsystem, name)
        labels = tuple(sanitize_label_name(label) for label in label_names)
        with self._lock:
            existing = self._families.get(full_name)
            if existing is not None:
                if existing.label_names != labels:
                    raise MetricRegistrationConflictError(full_name, existing.label_names, labels)
                return existing
            family = GaugeFamily(
                full_name=full_name,
                name=name,
                help_text=help_text or name,
                label_names=labels,
                _lock=self._lock,
            )
            self._families[full_name] = family
            return family

    def get(self, full_name: str) -> Optional[GaugeFamily]:
        with self._lock:
            return self._families.get(full_name)

    def family_names(self) -> list[str]:
        with self._lock:
            return sorted(self._families)

    def prune(self, label: str, keep: str) -> int:
        """
        Drop every series whose `label` value is not `keep`.

        Families without that label are left alone. Returns the number of
        series removed.
        """
        removed = 0
        with self._lock:
            for family in self._families.values():
                if label not in family.label_names:
                    continue
                idx = family.label_names.index(label)
                stale = [key for key in family.values if key[idx] != keep]
                for key in stale:
                    del family.values[key]
                removed += len(stale)
        return removed

    def render(self) -> list[str]:
        """
        Render all families in Prometheus text exposition format.
        """
        with self._lock:
            snapshot = [
                (family.full_name, family.help_text, family.label_names, dict(family.values))
                for family in sorted(self._families.values(), key=lambda f: f.full_name)
            ]

        lines: list[str] = []
        for full_name, help_text, label_names, values in snapshot:
            lines.append(f"# HELP {full_name} {escape_help(help_text)}")
            lines.append(f"# TYPE {full_name} gauge")
            for key in sorted(values):
                value = format_value(values[key])
                if label_names:
                    rendered = ",".join(
                        f'{label}="{escape_label_value(label_value)}"'
                        for label, label_value in zip(label_names, key)
                    )
                    lines.append(f"{full_name}{{{rendered}}} {value}")
                else:
                    lines.append(f"{full_name} {value}")
        return lines


__all__ = [
    "GaugeFamily",
    "GaugeRegistry",
    "build_full_name",
    "sanitize_metric_name",
    "escape_label_value",
]
