"""Input validation package."""

from subshare.validation.validator import InputValidator

__all__ = ["InputValidator"]
