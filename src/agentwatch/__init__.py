"""Local monitor for AI coding-agent processes and the repositories they edit."""

__version__ = "0.1.0"

__all__ = ["__version__"]
