from typing import Any, Dict, Optional


class LingDigError(Exception):
    """Base exception for every failure raised by the executors."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# HTTP side
class InvalidURL(LingDigError):
    """Raised when the target URL cannot be parsed or has no usable host."""
    pass

class RequestFailed(LingDigError):
    """Raised when the HTTP exchange fails at the transport level."""
    pass

class BodyReadFailed(LingDigError):
    """Raised when the response body cannot be read to the end."""
    pass

class TooManyRedirects(LingDigError):
    """Raised when more than the allowed number of redirects were followed."""
    pass

class Timeout(LingDigError):
    """Raised when the per-call deadline expires."""
    pass


# DNS side
class UnsupportedRecordType(LingDigError):
    """Raised when the record type token is not a known DNS type name."""
    pass

class QueryFailed(LingDigError):
    """Raised when the query could not be sent or no answer arrived in time."""
    pass

class ResolverError(LingDigError):
    """Raised when the resolver answers with a non-success response code."""
    def __init__(self, message: str, rcode: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.rcode = rcode


# Translator
class MissingURL(LingDigError):
    """Raised when a curl command line contains no URL."""
    pass
