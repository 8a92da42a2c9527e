"""Store-level errors."""


class StoreError(Exception):
    """Base class for storage failures that callers may recover from."""
    code = "store_error"


class ArtifactCorruptionError(StoreError):
    """A stored artifact could not be parsed or failed structural validation."""
    code = "artifact_corruption"

    def __init__(self, message: str, artifact_id: int | None = None):
        super().__init__(message)
        self.artifact_id = artifact_id
