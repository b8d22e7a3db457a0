"""Base oracle implementing the Template Method pattern.

All providers answer the same way:
    invoke() → _build_system_prompt() → _call_api()   ← only this differs per provider
             → SDK errors translated into prtasks_core.errors

Subclasses implement:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response
  - _translate_error (optional): map SDK exceptions onto the error taxonomy

Retrying is not done here. The dispatcher wraps each invocation with the
retry strategy so it can shrink the request between attempts.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from prtasks_core.errors import (
    OracleAuthenticationError,
    OracleError,
    OracleNetworkError,
    OracleTimeoutError,
    PayloadTooLargeError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096

# HTTP statuses that mean the service is temporarily unable to answer.
_TRANSIENT_STATUSES = (500, 502, 503, 504, 529)


def translate_sdk_error(sdk, error: Exception) -> OracleError:
    """Map an anthropic/openai SDK exception onto the oracle error taxonomy.

    Both SDKs expose the same exception names, so one mapping serves both.
    ``APITimeoutError`` subclasses ``APIConnectionError`` and is checked first.
    """
    message = str(error)
    if isinstance(error, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
        return OracleAuthenticationError(message)
    if isinstance(error, sdk.RateLimitError):
        return RateLimitError(message)
    if isinstance(error, sdk.APITimeoutError):
        return OracleTimeoutError(message)
    if isinstance(error, sdk.APIConnectionError):
        return OracleNetworkError(message)
    if isinstance(error, sdk.APIStatusError):
        if error.status_code == 413:
            return PayloadTooLargeError(message)
        if error.status_code in _TRANSIENT_STATUSES:
            return OracleNetworkError(message)
    return OracleError(message)


class BaseOracle(ABC):
    MAX_TOKENS: int = _MAX_TOKENS

    def invoke(self, prompt: str, output_format: str = "json") -> str:
        """Send one request and return the raw text answer.

        Raises an OracleError subclass on failure.
        """
        system = self._build_system_prompt(output_format)
        try:
            return self._call_api(system, prompt) or ""
        except OracleError:
            raise
        except Exception as e:
            translated = self._translate_error(e)
            logger.debug("%s call failed: %r -> %s", self.__class__.__name__, e, type(translated).__name__)
            raise translated from e

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response. Raise on failure."""

    def _translate_error(self, error: Exception) -> OracleError:
        return OracleError(str(error))

    def _build_system_prompt(self, output_format: str) -> str:
        if output_format == "json":
            return (
                "You are a precise assistant that converts code review feedback into tasks. "
                "Respond with valid JSON only: no markdown fences and no commentary."
            )
        return "You are a precise assistant that converts code review feedback into tasks."
