"""Custom exceptions for the :mod:`driftlint` package."""

from __future__ import annotations


class DriftLintError(Exception):
    """Base exception for DriftLint errors."""


class ConfigurationError(DriftLintError, ValueError):
    """Invalid settings file or setting value."""


class AnalysisError(DriftLintError, RuntimeError):
    """The external analysis call failed; the cycle must abort."""


class ModelUnavailableError(AnalysisError):
    """No language model could be selected for analysis."""


class PromptTemplateError(AnalysisError):
    """The prompt template could not be loaded."""


__all__ = [
    "DriftLintError",
    "ConfigurationError",
    "AnalysisError",
    "ModelUnavailableError",
    "PromptTemplateError",
]
