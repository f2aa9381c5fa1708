"""Exceptions raised by the import pipeline."""


class ImportHandlerError(Exception):
    """Base class for import pipeline errors."""


class ConfigurationError(ImportHandlerError):
    """Deployment is missing a required setting (e.g. the signing secret)."""


class StorageError(ImportHandlerError):
    """Uploaded object could not be read from storage."""


class ArchiveError(ImportHandlerError):
    """Archive bundle is corrupt or unreadable."""


class ContentExtractionError(ImportHandlerError):
    """Saved document could not be turned into an article."""


class TaskQueueError(ImportHandlerError):
    """Downstream task could not be enqueued."""


class InvalidTransitionError(ImportHandlerError):
    """Import run was moved to a state out of order."""
