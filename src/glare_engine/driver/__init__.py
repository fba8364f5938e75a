from .extraction import ExtractionChain, ExtractionStrategy, default_strategies
from .session import DriverInputs, GeminiImageSession, PageSnapshot, SessionState, is_settled

__all__ = [
    "DriverInputs",
    "ExtractionChain",
    "ExtractionStrategy",
    "GeminiImageSession",
    "PageSnapshot",
    "SessionState",
    "default_strategies",
    "is_settled",
]
