"""Configuration error type."""

from typing import List, Optional


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid.

    Carries every problem found plus hints for fixing them, so a single
    failed startup reports all misconfigurations at once.

    Attributes:
        message: Primary error message
        errors: Specific validation errors
        suggestions: Hints shown after the errors
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.suggestions = list(suggestions or [])
        super().__init__(self.format())

    def format(self) -> str:
        lines = [self.message]
        if self.errors:
            lines.append("\nValidation Errors:")
            lines.extend(f"  {i}. {error}" for i, error in enumerate(self.errors, 1))
        if self.suggestions:
            lines.append("\nSuggestions:")
            lines.extend(f"  - {suggestion}" for suggestion in self.suggestions)
        return "\n".join(lines)
