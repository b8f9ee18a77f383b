import asyncio
import enum
import grpc
from grpc_reflection.v1alpha import reflection_pb2
from grpcexplorer import constants
from grpcexplorer.helper import helper
from grpcexplorer.grpcchannel import grpcchannel, classify_rpc_error
from grpcexplorer.errors import (
    NegotiationError, ReflectionError, TransportError, DeadlineExceededError
)


class Dialect(enum.Enum):
    # v1 and v1alpha share the same wire messages, only the method path differs
    V1 = "grpc.reflection.v1"
    V1ALPHA = "grpc.reflection.v1alpha"

    @property
    def path(self) -> str:
        return f"/{self.value}.ServerReflection/ServerReflectionInfo"


async def exchange(transport: grpcchannel, path: str, request, timeout_s: float, symbol: str = ""):
    """
    Sends one reflection request on a fresh stream and returns the first response.

    The stream is cancelled on every exit path. A response carrying an
    ``error_response`` raises ReflectionError; transport failures are
    classified into TransportError subclasses.
    """
    stream = transport.open_stream(
        path,
        request_serializer=reflection_pb2.ServerReflectionRequest.SerializeToString,
        response_deserializer=reflection_pb2.ServerReflectionResponse.FromString,
    )
    call = stream(timeout=timeout_s)

    async def roundtrip():
        await call.write(request)
        await call.done_writing()
        return await call.read()

    try:
        response = await asyncio.wait_for(roundtrip(), timeout_s)
    except asyncio.TimeoutError as e:
        raise DeadlineExceededError(
            "DEADLINE_EXCEEDED", f"No reflection response within {timeout_s}s", transport.endpoint.target
        ) from e
    except grpc.RpcError as e:
        raise classify_rpc_error(e, transport.endpoint.target) from e
    finally:
        call.cancel()

    if response is grpc.aio.EOF:
        raise ReflectionError(symbol, grpc.StatusCode.UNKNOWN.value[0], "Reflection stream closed without a response")
    if response.HasField('error_response'):
        raise ReflectionError(symbol, response.error_response.error_code, response.error_response.error_message)
    return response


class ReflectionNegotiator(helper):
    """Picks the reflection dialect an endpoint speaks, once per session."""

    DIALECTS = (Dialect.V1, Dialect.V1ALPHA)
    MISSING_CODES = ("UNIMPLEMENTED", "NOT_FOUND")

    def __init__(self, transport: grpcchannel, timeout_s: float = constants.NEGOTIATION_TIMEOUT_S):
        super().__init__()
        self.transport = transport
        self.timeout_s = timeout_s
        self.dialect = None
        self._lock = asyncio.Lock()

    async def negotiate(self) -> Dialect:
        if self.dialect is not None:
            return self.dialect

        async with self._lock:
            # another caller may have finished while we waited
            if self.dialect is not None:
                return self.dialect

            failures = {}
            for dialect in self.DIALECTS:
                try:
                    await self.probe(dialect)
                except TransportError as e:
                    if not self.dialect_missing(e):
                        # the endpoint itself failed; another dialect would fail the same way
                        self.logger.error(f"Reflection negotiation with {self.transport.endpoint.target} failed: {e}")
                        raise
                    self.logger.warning(f"Reflection {dialect.name} not available on {self.transport.endpoint.target}: {e}")
                    failures[dialect.name] = str(e)
                    continue
                self.dialect = dialect
                self.logger.info(f"Using reflection {dialect.name} for {self.transport.endpoint.target}")
                return dialect

            error = NegotiationError(self.transport.endpoint.target, failures)
            self.logger.error(str(error))
            raise error

    @classmethod
    def dialect_missing(cls, error: TransportError) -> bool:
        return isinstance(error, DeadlineExceededError) or error.code in cls.MISSING_CODES

    async def probe(self, dialect: Dialect) -> bool:
        request = reflection_pb2.ServerReflectionRequest(list_services="*")
        try:
            await exchange(self.transport, dialect.path, request, self.timeout_s, "*")
        except ReflectionError as e:
            # the service answered, even if it did not like the request
            self.logger.debug(f"Reflection {dialect.name} answered with an error: {e}")
        return True
