"""
Log redaction for wallet secrets.

Private keys, mnemonics, bearer tokens and webhook secrets must never reach
the logs in plaintext. The redacting formatter is installed on the root
logger at startup; the payment routes pass inbound payloads through
``sanitize`` before logging them.
"""

import logging
import re
from typing import Any, Literal, Optional

from eth_account.hdaccount.mnemonic import Mnemonic

logger = logging.getLogger(__name__)

# Patterns to detect and redact sensitive information
SENSITIVE_PATTERNS = [
    # Fernet tokens produced by src.core.encryption
    (r'gAAAAA[a-zA-Z0-9\-_=]{20,}', 'gAAAAA***REDACTED***'),
    # Secrets in key=value or "key": "value" form
    (r'["\']?(private[_-]?key|seed[_-]?phrase|mnemonic|secret|password|token)["\']?\s*[:=]\s*["\']?[^"\',}]+["\']?', '***REDACTED***'),
    # Bearer tokens
    (r'Bearer [a-zA-Z0-9\-._~+/]+=*', 'Bearer ***REDACTED***'),
    # Webhook shared secret header
    (r'x-webhook-secret: [^\s]+', 'x-webhook-secret: ***REDACTED***'),
]

SENSITIVE_KEYS = {
    'private_key', 'privatekey', 'private-key',
    'seed_phrase', 'seedphrase', 'mnemonic',
    'secret', 'password', 'token',
    'authorization', 'x-webhook-secret',
}

_english_words = frozenset(Mnemonic().wordlist)


class RedactingFormatter(logging.Formatter):
    """
    Logging formatter that redacts sensitive information.

    This formatter intercepts log messages and replaces sensitive patterns
    with redacted placeholders before the log is written.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        style: Literal['%', '{', '$'] = '%'
    ) -> None:
        super().__init__(fmt, datefmt, style)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        return redact_string(message)


def redact_mnemonic_runs(value: str) -> str:
    """Replace any run of 12+ consecutive BIP-39 English words."""
    output: list[str] = []
    run: list[str] = []

    def flush() -> None:
        if len(run) >= 12:
            output.append("***REDACTED MNEMONIC***")
        else:
            output.extend(run)
        run.clear()

    for word in value.split(" "):
        if word.lower() in _english_words:
            run.append(word)
        else:
            flush()
            output.append(word)
    flush()
    return " ".join(output)


def redact_string(value: str) -> str:
    """
    Redact sensitive information from a string.

    Args:
        value: String to redact

    Returns:
        String with sensitive information redacted
    """
    value = redact_mnemonic_runs(value)
    for pattern, replacement in SENSITIVE_PATTERNS:
        value = re.sub(pattern, replacement, value, flags=re.IGNORECASE)
    return value


def redact_dict(data: dict[str, Any], additional_keys: Optional[set[str]] = None) -> dict[str, Any]:
    """
    Redact sensitive values from a dictionary.

    Args:
        data: Dictionary to redact
        additional_keys: Additional keys to redact beyond the default list

    Returns:
        Dictionary with sensitive values redacted
    """
    sensitive_keys = set(SENSITIVE_KEYS)
    if additional_keys:
        sensitive_keys.update(additional_keys)

    redacted: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in sensitive_keys):
            redacted[key] = "***REDACTED***"
        else:
            redacted[key] = sanitize(value)

    return redacted


def sanitize(data: Any) -> Any:
    """
    Sanitize data for logging by redacting sensitive information.

    Args:
        data: Any data structure to sanitize

    Returns:
        Sanitized version of the data
    """
    if isinstance(data, str):
        return redact_string(data)
    elif isinstance(data, dict):
        return redact_dict(data)
    elif isinstance(data, list):
        return [sanitize(item) for item in data]
    else:
        return data


def configure_secure_logging(level: str, fmt: str) -> logging.Logger:
    """
    Configure the root logger to use the redacting formatter.

    Called once during application startup.

    Returns:
        The configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(RedactingFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S'))
    root_logger.addHandler(console_handler)

    return root_logger
