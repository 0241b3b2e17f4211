"""Error taxonomy for the sync pipeline.

Sync callers distinguish these to decide what is fatal: a ``ConfigurationError``
or ``StorageError`` aborts the current attempt, a ``SourceUnavailableError``
aborts one sync call but not a backfill, and a ``DataShapeError`` only skips the
offending record.
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class ConfigurationError(PipelineError):
    """Missing or rejected source credential."""


class SourceUnavailableError(PipelineError):
    """Network failure, timeout or non-2xx answer from the source."""


class StorageError(PipelineError):
    """A cache write failed; the whole batch was rolled back."""


class DataShapeError(PipelineError):
    """A raw record cannot be ingested (e.g. it carries no notice id)."""
