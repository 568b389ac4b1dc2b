"""Severity classification for structured and raw analyzer output."""

from .severity_classifier import (
    CountMode,
    KeywordTextStrategy,
    SeverityClassifier,
    TextSeverityStrategy,
)

__all__ = [
    "CountMode",
    "KeywordTextStrategy",
    "SeverityClassifier",
    "TextSeverityStrategy",
]
