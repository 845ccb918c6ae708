"""Multi-agent team conversation orchestrator."""

__version__ = "0.1.0"
