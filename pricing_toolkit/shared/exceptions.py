"""
Exception hierarchy for the pricing toolkit.

Exception Categories:
- RetryableException: Transient failures that may succeed on retry (RPC, network)
- NonRetryableException: Permanent failures that won't benefit from retry (bad data)
- ConfigurationException: Deployment/programming errors that prevent operation

Failure taxonomy:
- MulticallTransportError -> RetryableException (batched RPC call failed as a whole)
- CallRevertedError -> NonRetryableException (one call of a batch failed)
- SourceUnavailableError -> APIException (a whole price source is down)
- UnsupportedChainError -> ConfigurationException (unknown chain id)
"""

from typing import Optional


class RetryableException(Exception):
    """
    Base class for exceptions that may succeed on retry.

    Use for transient failures like:
    - RPC timeouts
    - Rate limiting
    - Temporary network issues
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NonRetryableException(Exception):
    """
    Base class for exceptions that won't benefit from retry.

    Use for permanent failures like:
    - Reverted contract calls
    - Malformed return data
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationException(NonRetryableException):
    """
    Exception for configuration/startup errors.

    Use when:
    - Required environment variables are missing
    - Invalid configuration values
    """

    pass


class UnsupportedChainError(ConfigurationException):
    """Raised when a chain id reaches a component that does not know it."""

    def __init__(self, chain_id: int):
        super().__init__(f"Chain ID {chain_id} not supported")
        self.chain_id = chain_id


class APIException(RetryableException):
    """
    Exception for external API failures.

    Inherits from RetryableException because API failures
    are often transient (rate limits, timeouts).
    """

    pass


class SourceUnavailableError(APIException):
    """A whole price source is unreachable or answered with garbage."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class MulticallTransportError(RetryableException):
    """
    The batched call itself failed before producing per-item results.

    Raised to every request of a batch once all attempts are exhausted.
    The final underlying error is kept in ``last_error``.
    """

    def __init__(
        self,
        chain_id: int,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ):
        super().__init__(
            f"Multicall failed after {attempts} attempts for chain "
            f"{chain_id}: {last_error!r}"
        )
        self.chain_id = chain_id
        self.attempts = attempts
        self.last_error = last_error


class CallRevertedError(NonRetryableException):
    """A single call inside a batch reverted or returned undecodable data."""

    def __init__(self, target: str, signature: str, reason: str = "reverted"):
        super().__init__(f"{signature} on {target}: {reason}")
        self.target = target
        self.signature = signature
        self.reason = reason


class QueueClearedError(NonRetryableException):
    """The request was still queued when its queue was cleared."""

    pass
