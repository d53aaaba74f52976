"""Error taxonomy for the print job pipeline.

Every error raised inside a job is caught at the job boundary and turned
into a single-job failure. None of them are allowed to escape to the host.
"""


class PrintPipelineError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return self.reason


class LoadFailure(PrintPipelineError):
    """The rendering sandbox could not load the receipt URL."""


class ReadyTimeout(PrintPipelineError):
    """No readiness signal arrived within the job ceiling."""


class PrintFailure(PrintPipelineError):
    """The printing facility or the spooling bridge rejected the job."""


class BridgeLaunchFailure(PrintFailure):
    """The spooling bridge executable is missing or could not be started."""


class EncodeFailure(PrintPipelineError):
    """The ready payload could not be decoded into a printable document."""


class SettingsError(PrintPipelineError):
    """Print settings could not be persisted."""
