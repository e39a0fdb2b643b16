from typing import Optional

from config import settings


class TextValidator:
    """Presence checks for free-text menu input. Content is otherwise taken as typed."""

    @staticmethod
    def is_present(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def contains_delimiter(text: Optional[str], delimiter: Optional[str] = None) -> bool:
        # Record files do not escape the delimiter, so such values corrupt the row on reload
        if not text:
            return False
        return (delimiter or settings.delimiter) in text


class NumberValidator:
    @staticmethod
    def parse_int(raw: Optional[str]) -> Optional[int]:
        """Integer typed at a prompt, or None when the line is not a whole number."""
        if raw is None:
            return None
        # isdigit() also accepts superscripts like "²", which int() rejects
        try:
            return int(raw.strip())
        except ValueError:
            return None
