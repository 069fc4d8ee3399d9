"""Error taxonomy for the generation pipeline."""


class PipelineError(Exception):
    """Pipeline-level failure (plan unreadable, no tasks). Fatal to a run."""


class ServiceError(PipelineError):
    """Completion service failed: transport, auth, quota or timeout."""


class ParseError(PipelineError):
    """Malformed plan document or malformed JSON from a model response."""


class ValidationError(PipelineError):
    """A review response is structurally unusable (e.g. no score)."""


class CheckpointCorruption(PipelineError):
    """Checkpoint file exists but cannot be trusted."""
