import re
import grpc
from dataclasses import dataclass
from typing import Optional
from grpcexplorer import constants
from grpcexplorer.helper import helper
from grpcexplorer.errors import (
    TransportError, DeadlineExceededError, UnreachableError, EncryptionMismatchError
)

_SCHEME = re.compile(r"^(?:https?|grpcs?)://", re.IGNORECASE)

_ENCRYPTION_PATTERNS = re.compile(
    r"\bssl\b|\btls\b|handshake|wrong_version_number|certificate|socket closed",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int
    encrypted: bool

    @classmethod
    def parse(cls, address: str, encrypted: Optional[bool] = None) -> "Endpoint":
        """
        Accepts host, host:port and scheme-prefixed addresses.
        Without a port, 443 is used for encrypted endpoints and 9090 otherwise;
        without an explicit flag, only port 443 implies encryption.
        """
        normalized = _SCHEME.sub("", (address or "").strip()).rstrip("/")
        if not normalized:
            raise ValueError("Endpoint address is required")

        host, sep, port = normalized.rpartition(":")
        if not sep or not port.isdigit():
            host, port = normalized, None

        if port is None:
            if encrypted is None:
                encrypted = True
            port_number = constants.DEFAULT_TLS_PORT if encrypted else constants.DEFAULT_PLAINTEXT_PORT
        else:
            port_number = int(port)
            if encrypted is None:
                encrypted = port_number == constants.DEFAULT_TLS_PORT

        return cls(host=host, port=port_number, encrypted=encrypted)

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"


def classify_rpc_error(error: grpc.RpcError, target: Optional[str] = None) -> TransportError:
    """Maps a raw grpc error onto the transport error taxonomy."""
    code = error.code() if callable(getattr(error, 'code', None)) else None
    details = error.details() if callable(getattr(error, 'details', None)) else str(error)
    details = details or ""
    code_name = getattr(code, 'name', None) or "UNKNOWN"

    if code == grpc.StatusCode.DEADLINE_EXCEEDED:
        return DeadlineExceededError(code_name, details, target)
    if code == grpc.StatusCode.UNAVAILABLE:
        # handshake failures are also reported as "failed to connect", check them first
        if _ENCRYPTION_PATTERNS.search(details):
            return EncryptionMismatchError(code_name, details, target)
        return UnreachableError(code_name, details, target)
    return TransportError(code_name, details, target)


class grpcchannel(helper):
    """Owns one grpc.aio channel to a single endpoint."""

    def __init__(self, endpoint: Endpoint, ca_certificate: Optional[str] = None):
        super().__init__()
        self.endpoint = endpoint
        self.ca_certificate = ca_certificate
        self.channel = None
        self.closed = False

    def connect_to_server(self):
        if self.closed:
            raise TransportError("CANCELLED", "Transport session already closed", self.endpoint.target)
        if self.channel is not None:
            return self.channel

        if self.endpoint.encrypted:
            root_certificates = None
            if self.ca_certificate:
                with open(self.ca_certificate, 'rb') as f:
                    root_certificates = f.read()
            credentials = grpc.ssl_channel_credentials(root_certificates=root_certificates)
            self.channel = grpc.aio.secure_channel(
                self.endpoint.target, credentials, options=constants.CHANNEL_OPTIONS
            )
        else:
            self.channel = grpc.aio.insecure_channel(
                self.endpoint.target, options=constants.CHANNEL_OPTIONS
            )
        self.logger.debug(f"Opened channel to {self.endpoint.target} (encrypted={self.endpoint.encrypted})")
        return self.channel

    def open_stream(self, path: str, request_serializer=None, response_deserializer=None):
        """Returns a bidirectional-stream multicallable bound to ``path``."""
        channel = self.connect_to_server()
        return channel.stream_stream(
            path,
            request_serializer=request_serializer,
            response_deserializer=response_deserializer,
        )

    async def unary_call(self, path: str, request_bytes: bytes, timeout_ms: int) -> bytes:
        channel = self.connect_to_server()
        call = channel.unary_unary(path)
        try:
            return await call(request_bytes, timeout=timeout_ms / 1000.0)
        except grpc.RpcError as e:
            self.log(function_name='unary_call', args=[path, len(request_bytes), timeout_ms], exception=e)
            raise classify_rpc_error(e, self.endpoint.target) from e

    async def close(self):
        if self.closed:
            return
        self.closed = True
        channel, self.channel = self.channel, None
        if channel is not None:
            await channel.close()
            self.logger.debug(f"Closed channel to {self.endpoint.target}")

    async def __aenter__(self):
        self.connect_to_server()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
