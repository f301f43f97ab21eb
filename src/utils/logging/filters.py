"""
Log filters.

SecretMaskingFilter keeps client secrets and bearer tokens out of log
output. Web API errors and token responses can echo them back in exception
messages, which end up in logs and saved reports.
"""

import logging
import re

MASK = "***"

SECRET_KEYS = frozenset({
    "client_secret",
    "access_token",
    "refresh_token",
    "authorization",
    "password",
    "token",
})

_PATTERNS = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(
        r"""(["']?(?:client_secret|access_token|refresh_token|password)["']?\s*[:=]\s*["']?)"""
        r"""[^"'&,\s}]+""",
        re.IGNORECASE,
    ),
)


def mask_secrets(text: str) -> str:
    """Replace bearer tokens and secret-looking key/value pairs with a mask."""
    for pattern in _PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + MASK, text)
    return text


class SecretMaskingFilter(logging.Filter):
    """
    Masks secrets in the message and in extra fields of every record.

    The record's message is rendered once and stored back without args so
    downstream formatters see the masked text.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = ()

        for key in list(record.__dict__):
            if key.lower() in SECRET_KEYS and record.__dict__[key] is not None:
                record.__dict__[key] = MASK

        return True
