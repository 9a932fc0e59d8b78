"""Image optimization pipeline with an AI-with-fallback batch orchestrator."""

__version__ = "0.1.0"
