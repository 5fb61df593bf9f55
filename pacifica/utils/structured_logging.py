"""
Log sanitization for production environments.

Keeps signing keys and long secrets out of log output.
"""

import logging
import re


class CredentialRedactionFilter(logging.Filter):
    """
    Security filter that redacts credentials from log messages.

    Prevents private keys and other sensitive data from leaking into logs,
    exception messages, or debug output.

    - Redacts values of private_key/secret/password style assignments
    - Redacts long base58 strings (Ed25519 secrets are 87-88 chars)

    Public keys are shorter than a 64-byte secret and stay readable, so
    account addresses can still be correlated in logs. Signatures have the
    same length as a secret and are redacted too.

    Usage:
        >>> handler = logging.StreamHandler()
        >>> handler.addFilter(CredentialRedactionFilter())
        >>> logger.addHandler(handler)
    """

    # Keep the prefix (key=) and replace the value
    SECRET_ASSIGNMENT_PATTERN = re.compile(
        r'((?:private_key|secret|passphrase|password)["\']?\s*[:=]\s*["\']?)'
        r'[1-9A-HJ-NP-Za-km-z]{20,}["\']?',
        re.IGNORECASE
    )
    # Base58 alphabet has no 0, O, I or l
    BASE58_SECRET_PATTERN = re.compile(r'\b[1-9A-HJ-NP-Za-km-z]{87,88}\b')

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Redact credentials from log record.

        Args:
            record: Log record to filter

        Returns:
            Always True (record is never filtered out, just sanitized)
        """
        if record.msg:
            record.msg = self.redact(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self.redact(str(v))
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self.redact(str(arg))
                    for arg in record.args
                )

        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)

        return True

    def redact(self, text: str) -> str:
        """
        Redact all credential patterns from text.

        Args:
            text: Text to redact

        Returns:
            Text with credentials redacted
        """
        if not text:
            return text

        text = self.SECRET_ASSIGNMENT_PATTERN.sub(r'\1[REDACTED]', text)
        text = self.BASE58_SECRET_PATTERN.sub(
            lambda match: match.group(0)[:6] + '...[REDACTED]',
            text
        )
        return text
