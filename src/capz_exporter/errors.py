from __future__ import annotations


class ExporterError(RuntimeError):
    pass


class FeedFetchError(ExporterError):
    pass


class FeedParseError(ExporterError):
    pass


class NoSuccessfulBuildError(ExporterError):
    """
    No record in the job-status feed matched the job name with a success state.

    Expected while a job has no recent green run; callers retry on the next
    interval.
    """

    def __init__(self, job_name: str) -> None:
        super().__init__(f"No successful Prow jobs found for job name: {job_name}")
        self.job_name = job_name


class PageFetchError(ExporterError):
    pass


class ArtifactFetchError(ExporterError):
    pass


class ArtifactParseError(ExporterError):
    """
    An artifact's bytes did not match the expected result schema.
    """

    def __init__(self, artifact: str, reason: str) -> None:
        super().__init__(f"Failed to parse {artifact}: {reason}")
        self.artifact = artifact
        self.reason = reason


class MetricRegistrationConflictError(ExporterError):
    """
    A gauge family was requested with a label schema that differs from the one
    it was first registered with.
    """

    def __init__(
        self,
        name: str,
        existing_labels: tuple[str, ...],
        requested_labels: tuple[str, ...],
    ) -> None:
        super().__init__(
            f"Metric {name} already registered with labels {list(existing_labels)}; "
            f"refusing labels {list(requested_labels)}"
        )
        self.name = name
        self.existing_labels = existing_labels
        self.requested_labels = requested_labels


__all__ = [
    "ExporterError",
    "FeedFetchError",
    "FeedParseError",
    "NoSuccessfulBuildError",
    "PageFetchError",
    "ArtifactFetchError",
    "ArtifactParseError",
    "MetricRegistrationConflictError",
]
