from .discovery import discover_jobs, filter_jobs
from .sequencer import Sequencer, parse_payload

__all__ = ["Sequencer", "discover_jobs", "filter_jobs", "parse_payload"]
