"""Error taxonomy for the probe service."""

from __future__ import annotations

import socket
import ssl
from enum import Enum
from http.client import HTTPException
from urllib import error


class ProbeConfigurationError(Exception):
    """Raised before dispatch when a probe cannot be attempted at all."""

    status_code = 400


class ProbeValidationError(ProbeConfigurationError):
    """Required probe input is missing or malformed."""


class AuthenticationError(ProbeConfigurationError):
    """Bearer credential is missing, malformed or does not verify."""

    status_code = 401


class TransportErrorCategory(str, Enum):
    TIMEOUT = "TIMEOUT"
    DNS_ERROR = "DNS_ERROR"
    SSL_ERROR = "SSL_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    INVALID_URL = "INVALID_URL"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Exceptions a single urllib round trip can raise before a response is fully read.
TRANSPORT_EXCEPTIONS: tuple[type[BaseException], ...] = (OSError, ValueError, HTTPException)


def categorize_exception(exc: BaseException) -> TransportErrorCategory:
    """Map urllib/socket exceptions to a TransportErrorCategory."""

    if isinstance(exc, error.URLError) and isinstance(exc.reason, BaseException):
        return categorize_exception(exc.reason)

    if isinstance(exc, (TimeoutError, socket.timeout)):
        return TransportErrorCategory.TIMEOUT

    if isinstance(exc, (ssl.SSLError, ssl.CertificateError)):
        return TransportErrorCategory.SSL_ERROR

    if isinstance(exc, (socket.gaierror, socket.herror)):
        return TransportErrorCategory.DNS_ERROR

    if isinstance(exc, (ConnectionError, HTTPException)):
        return TransportErrorCategory.CONNECTION_ERROR

    if isinstance(exc, ValueError):
        return TransportErrorCategory.INVALID_URL

    if isinstance(exc, error.URLError) and "unknown url type" in str(exc.reason).lower():
        return TransportErrorCategory.INVALID_URL

    return TransportErrorCategory.UNKNOWN_ERROR


def describe_exception(exc: BaseException) -> str:
    """Return the message recorded for a transport failure."""

    if isinstance(exc, error.URLError):
        reason = exc.reason
        return str(reason) if str(reason) else type(reason).__name__
    return str(exc) or type(exc).__name__
