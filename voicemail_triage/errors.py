"""
Error taxonomy for the voicemail triage pipeline.

Terminal errors stop a pipeline run and are reported to the caller as a
structured failure. ParseError never leaves the stage that raised it.
"""


class PipelineError(Exception):
    """Base class for every error the pipeline knows how to report."""
    
    @property
    def kind(self) -> str:
        """Error kind reported in a failed PipelineResult."""
        return type(self).__name__


class MalformedInputError(PipelineError):
    """The event payload carries no transcript content."""
    pass


class EmptyCatalogError(PipelineError):
    """The tenant has zero request types configured."""
    pass


class UpstreamError(PipelineError):
    """A collaborator was unreachable or answered with a non-success status."""
    pass


class ParseError(PipelineError):
    """Model output was not the JSON the stage asked for."""
    pass


class QuotaExceededError(PipelineError):
    """The tenant is at its ticket ceiling."""
    pass


class QuotaRaceError(PipelineError):
    """A conditional quota increment lost against a concurrent commit."""
    pass


class TicketingServiceError(PipelineError):
    """A create or update call to the service desk failed."""
    pass


class StorageError(PipelineError):
    """The tenant registry or issue ledger could not be read, locked or written."""
    pass
