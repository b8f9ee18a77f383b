"""Exception hierarchy raised by the reflection and invocation engine.

Engine code raises these; ``main`` turns them into JSON payloads through
``helper.exception_to_serializable``. Public attributes end up in the
payload's ``details``.
"""

from typing import List, Optional, Sequence


class ExplorerError(Exception):
    """Base class for every engine error."""


class TransportError(ExplorerError):
    """A gRPC call failed at the transport layer.

    ``code`` is the gRPC status code name (``UNAVAILABLE``, ...) and ``kind``
    a coarse classification: ``deadline_exceeded``, ``unreachable``,
    ``encryption_mismatch`` or ``rpc``.
    """

    kind = "rpc"

    def __init__(self, code: str, message: str, target: Optional[str] = None):
        self.code = code
        self.details = message
        self.target = target
        super().__init__(f"gRPC error {code}: {message}")


class DeadlineExceededError(TransportError):
    kind = "deadline_exceeded"


class UnreachableError(TransportError):
    kind = "unreachable"


class EncryptionMismatchError(TransportError):
    kind = "encryption_mismatch"


class NegotiationError(ExplorerError):
    """Neither reflection dialect answered a test request."""

    def __init__(self, target: str, failures: dict):
        self.target = target
        self.failures = failures
        reasons = "; ".join(f"{dialect}: {reason}" for dialect, reason in failures.items())
        super().__init__(f"No reflection dialect available on {target} ({reasons})")


class ReflectionError(ExplorerError):
    """The reflection service answered with an error_response."""

    def __init__(self, symbol: str, error_code: int, error_message: str):
        self.symbol = symbol
        self.error_code = error_code
        self.error_message = error_message
        super().__init__(f"Reflection error for '{symbol}' (code {error_code}): {error_message}")


class NotFoundError(ExplorerError):
    def __init__(self, service_name: str, method_name: Optional[str] = None,
                 available_methods: Optional[Sequence[str]] = None):
        self.service_name = service_name
        self.method_name = method_name
        self.available_methods = list(available_methods or [])
        if method_name is None:
            message = f"Service not found: {service_name}"
        else:
            message = f"Method not found: {service_name}.{method_name}"
        if self.available_methods:
            message += f" (available methods: {', '.join(self.available_methods)})"
        super().__init__(message)


class StreamingUnsupportedError(ExplorerError):
    def __init__(self, method_name: str, request_streaming: bool, response_streaming: bool):
        self.method_name = method_name
        self.request_streaming = request_streaming
        self.response_streaming = response_streaming
        super().__init__(f"Streaming methods are not supported: {method_name}")


class MissingTypeError(ExplorerError):
    """A type referenced while building a message class is not registered."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"no such Type or Enum '{type_name}'")


class CodecError(ExplorerError):
    """Encoding or decoding failed for a reason other than a missing type."""


class DependencyResolutionError(ExplorerError):
    def __init__(self, message: str, loaded_types: Optional[List[str]] = None):
        self.loaded_types = list(loaded_types or [])
        super().__init__(message)


class CircularDependencyError(DependencyResolutionError):
    pass


class DependencyDepthExceededError(DependencyResolutionError):
    pass


class RegistryInconsistencyError(DependencyResolutionError):
    """A type reported missing is in fact registered: a bug, not a gap."""
