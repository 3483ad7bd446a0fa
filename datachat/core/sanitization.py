"""
Sanitization helpers for user-provided strings.

Queries, file names and column names are user controlled and end up in log
lines and in the LLM prompt; credentials must never be logged in full.
"""
import re
from typing import Optional

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')
_ALL_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f-\x9f]')


def sanitize_filename(filename: Optional[str], max_length: int = 255) -> str:
    """
    Strip path components and control characters from an uploaded file name.

    Returns "unknown" when nothing usable is left.
    """
    if not filename:
        return "unknown"

    filename = filename.split('/')[-1].split('\\')[-1]
    filename = _ALL_CONTROL_CHARS.sub('', filename)
    filename = filename.strip('. ')

    if len(filename) > max_length:
        filename = filename[:max_length]

    return filename or "unknown"


def sanitize_for_logging(value: Optional[str], max_length: int = 500) -> str:
    """
    Make a value safe to embed in a single log line (prevents log injection).
    """
    if not value:
        return ""

    value = re.sub(r'[\r\n]', ' ', str(value))
    value = _ALL_CONTROL_CHARS.sub('', value)

    if len(value) > max_length:
        value = value[:max_length] + "..."

    return value


def sanitize_for_prompt(value: Optional[str], max_length: int = 4000) -> str:
    """
    Clean a user query before it is sent to the model.

    Newlines and tabs survive; other control characters are removed and the
    text is trimmed and truncated.
    """
    if not value:
        return ""

    value = _CONTROL_CHARS.sub('', str(value)).strip()
    return value[:max_length]


def mask_credential(key: Optional[str], visible: int = 4) -> str:
    """Render an API key for logs as prefix + '...' + last characters."""
    if not key:
        return "<none>"
    if len(key) <= visible * 2:
        return "*" * len(key)
    return f"{key[:visible]}...{key[-visible:]}"


def validate_column_name(name: str) -> bool:
    """
    Check that an uploaded header is a usable column name.

    Newlines and tabs are common in spreadsheet headers and are allowed.
    """
    if not name or len(name) > 1000:
        return False

    dangerous_patterns = [
        r'\.\.',
        r'[\x00-\x08\x0b\x0c\x0e-\x1f]',
        r'^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$',
    ]

    for pattern in dangerous_patterns:
        if re.search(pattern, name, re.IGNORECASE):
            return False

    return True
