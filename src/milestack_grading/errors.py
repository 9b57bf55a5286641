from __future__ import annotations

from typing import List, Optional


class GradingError(Exception):
    """Base class for grading failures."""


class ContextValidationError(GradingError, ValueError):
    """Raised when a grading context is missing required fields."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid grading context: " + "; ".join(self.problems))


class GradingProviderError(GradingError, RuntimeError):
    """Raised by an external grading provider; triggers the next fallback."""

    def __init__(self, provider: str, message: str, errors: Optional[List[str]] = None):
        self.provider = provider
        self.errors = list(errors or [])
        detail = message
        if self.errors:
            detail = f"{message}: {', '.join(self.errors)}"
        super().__init__(f"[{provider}] {detail}")
