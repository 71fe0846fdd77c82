"""agentdeck: a terminal dashboard for agent sessions."""

__version__ = "0.1.0"
