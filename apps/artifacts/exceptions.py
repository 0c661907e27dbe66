"""Exceptions raised by the artifact store."""


class ArtifactError(Exception):
    """Base class for artifact store failures."""

    def __init__(self, run_id: str, name: str, message: str):
        self.run_id = run_id
        self.name = name
        super().__init__(message)


class ArtifactNotFoundError(ArtifactError):
    """The artifact was never uploaded for this run, or its file is gone."""

    def __init__(self, run_id: str, name: str, detail: str = ""):
        message = f"Artifact '{name}' not found for run {run_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(run_id, name, message)


class ArtifactConsumedError(ArtifactError):
    """The artifact has already been downloaded by a stage."""

    def __init__(self, run_id: str, name: str, consumer_stage: str = ""):
        self.consumer_stage = consumer_stage
        by = f" by stage {consumer_stage}" if consumer_stage else ""
        super().__init__(run_id, name, f"Artifact '{name}' of run {run_id} already consumed{by}")


class ArtifactIntegrityError(ArtifactError):
    """Stored bytes no longer match the checksum recorded at upload."""

    def __init__(self, run_id: str, name: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            run_id,
            name,
            f"Artifact '{name}' of run {run_id} failed checksum "
            f"(expected {expected[:12]}, got {actual[:12]})",
        )
