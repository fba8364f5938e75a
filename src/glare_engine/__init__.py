from .models import (
    Category,
    DriverTimeoutError,
    ExtractionAttempt,
    ExtractionError,
    GlareError,
    InteractionError,
    Job,
    JobOutcome,
    RemoteEnvironmentError,
    ResultPayload,
    RunSummary,
)

__all__ = [
    "Category",
    "DriverTimeoutError",
    "ExtractionAttempt",
    "ExtractionError",
    "GlareError",
    "InteractionError",
    "Job",
    "JobOutcome",
    "RemoteEnvironmentError",
    "ResultPayload",
    "RunSummary",
]
