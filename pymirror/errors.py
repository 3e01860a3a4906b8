"""
Error taxonomy for pymirror.

Out-of-range discovery pages are not errors: the catalog answers them with
an empty page.
"""

from typing import Optional


class MirrorError(Exception):
    """Base exception for all pymirror errors."""

    code: str = "MIRROR-UNKNOWN"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ConfigurationError(MirrorError):
    """Raised when the forwarder has no server endpoint configured."""

    code = "MIRROR-CONFIG"


class TransportError(MirrorError):
    """Raised on network failures and malformed response envelopes."""

    code = "MIRROR-TRANSPORT"


class DecodingError(MirrorError):
    """Raised when a payload is present but not well-formed."""

    code = "MIRROR-DECODE"


class InvocationError(MirrorError):
    """
    Raised when the remotely invoked callable itself failed.

    The original exception is kept on ``original`` and chained as the cause.
    """

    code = "MIRROR-INVOKE"

    def __init__(self, original: BaseException, target: Optional[str] = None):
        where = f" in {target}" if target else ""
        super().__init__(f"Remote call failed{where}: {type(original).__name__}: {original}")
        self.original = original
        self.target = target
        self.__cause__ = original
