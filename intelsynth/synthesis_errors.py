"""
Error taxonomy for synthesis. Each class carries the run-event kind it is recorded under.
Only MissingRequiredInputError is fatal; the rest are recovered inside their phase.
"""
from intelstore.errors import ArtifactCorruptionError


class SynthesisError(Exception):
    code = "synthesis_error"


class MissingRequiredInputError(SynthesisError):
    """Core slots absent or coverage below threshold; synthesis cannot proceed."""
    code = "missing_required_input"

    def __init__(self, message: str, missing_slots: list[str] | None = None, coverage: float | None = None):
        super().__init__(message)
        self.missing_slots = list(missing_slots or [])
        self.coverage = coverage


class MalformedRecordWarning(SynthesisError):
    """A note's payload or citation column could not be parsed."""
    code = "malformed_record"


class SchemaMismatchWarning(SynthesisError):
    """A present slot has none of the fields a pattern type expects."""
    code = "schema_mismatch"


class ValidationRejection(SynthesisError):
    """Drafted section markup uses tags or classes outside the allow-list."""
    code = "validation_rejection"

    def __init__(self, message: str, tags: list[str] | None = None, classes: list[str] | None = None):
        super().__init__(message)
        self.tags = sorted(set(tags or []))
        self.classes = sorted(set(classes or []))


__all__ = [
    "SynthesisError",
    "MissingRequiredInputError",
    "MalformedRecordWarning",
    "SchemaMismatchWarning",
    "ValidationRejection",
    "ArtifactCorruptionError",
]
