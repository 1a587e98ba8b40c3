"""DriftLint - background LLM diagnostics that follow your code around."""

__version__ = "0.1.0"
