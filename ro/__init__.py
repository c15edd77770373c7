"""Release publication orchestrator."""

__version__ = "0.3.0"
