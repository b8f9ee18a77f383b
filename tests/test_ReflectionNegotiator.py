import asyncio
from types import SimpleNamespace
import pytest
from grpcexplorer.grpcchannel import Endpoint, grpcchannel
from grpcexplorer.ReflectionNegotiator import ReflectionNegotiator, Dialect
from grpcexplorer.errors import (
    NegotiationError, TransportError, UnreachableError, DeadlineExceededError, EncryptionMismatchError
)


class ScriptedNegotiator(ReflectionNegotiator):
    def __init__(self, available, failure=None):
        super().__init__(SimpleNamespace(endpoint=Endpoint("node", 9090, False)))
        self.available = available
        self.failure = failure
        self.probes = []

    async def probe(self, dialect):
        self.probes.append(dialect)
        await asyncio.sleep(0)
        if dialect not in self.available:
            raise self.failure or TransportError("UNIMPLEMENTED", f"{dialect.value} missing", "node:9090")
        return True


def test_dialect_paths():
    assert Dialect.V1.path == "/grpc.reflection.v1.ServerReflection/ServerReflectionInfo"
    assert Dialect.V1ALPHA.path == "/grpc.reflection.v1alpha.ServerReflection/ServerReflectionInfo"


@pytest.mark.asyncio
async def test_v1_is_preferred():
    negotiator = ScriptedNegotiator({Dialect.V1, Dialect.V1ALPHA})
    assert await negotiator.negotiate() is Dialect.V1
    assert negotiator.probes == [Dialect.V1]


@pytest.mark.asyncio
async def test_falls_back_to_v1alpha_and_caches():
    negotiator = ScriptedNegotiator({Dialect.V1ALPHA})
    assert await negotiator.negotiate() is Dialect.V1ALPHA
    assert await negotiator.negotiate() is Dialect.V1ALPHA
    assert negotiator.probes == [Dialect.V1, Dialect.V1ALPHA]


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_negotiation():
    negotiator = ScriptedNegotiator({Dialect.V1ALPHA})
    results = await asyncio.gather(*(negotiator.negotiate() for _ in range(5)))
    assert set(results) == {Dialect.V1ALPHA}
    assert negotiator.probes == [Dialect.V1, Dialect.V1ALPHA]


@pytest.mark.asyncio
async def test_no_dialect_is_fatal():
    negotiator = ScriptedNegotiator(set())
    with pytest.raises(NegotiationError) as excinfo:
        await negotiator.negotiate()
    assert set(excinfo.value.failures) == {"V1", "V1ALPHA"}
    assert negotiator.dialect is None


@pytest.mark.asyncio
@pytest.mark.parametrize("dialects, expected", [
    (("grpc.reflection.v1",), Dialect.V1),
    (("grpc.reflection.v1alpha",), Dialect.V1ALPHA),
    (("grpc.reflection.v1", "grpc.reflection.v1alpha"), Dialect.V1),
])
async def test_negotiates_against_live_server(make_server, dialects, expected):
    server = await make_server(dialects=dialects)
    async with grpcchannel(Endpoint.parse(server.address, encrypted=False)) as transport:
        assert await ReflectionNegotiator(transport).negotiate() is expected


@pytest.mark.asyncio
async def test_server_without_reflection(make_server):
    server = await make_server(dialects=())
    async with grpcchannel(Endpoint.parse(server.address, encrypted=False)) as transport:
        with pytest.raises(NegotiationError):
            await ReflectionNegotiator(transport).negotiate()


@pytest.mark.asyncio
async def test_timeouts_move_on_to_next_dialect():
    negotiator = ScriptedNegotiator(set(), DeadlineExceededError("DEADLINE_EXCEEDED", "slow", "node:9090"))
    with pytest.raises(NegotiationError):
        await negotiator.negotiate()
    assert negotiator.probes == [Dialect.V1, Dialect.V1ALPHA]


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    UnreachableError("UNAVAILABLE", "connection refused", "node:9090"),
    EncryptionMismatchError("UNAVAILABLE", "handshake failed", "node:9090"),
    TransportError("PERMISSION_DENIED", "no", "node:9090"),
])
async def test_endpoint_failures_are_not_retried(failure):
    negotiator = ScriptedNegotiator(set(), failure)
    with pytest.raises(type(failure)) as excinfo:
        await negotiator.negotiate()
    assert excinfo.value is failure
    assert negotiator.probes == [Dialect.V1]
    assert negotiator.dialect is None


@pytest.mark.asyncio
async def test_unreachable_live_endpoint():
    async with grpcchannel(Endpoint.parse("127.0.0.1:1", encrypted=False)) as transport:
        with pytest.raises(UnreachableError) as excinfo:
            await ReflectionNegotiator(transport).negotiate()
    assert excinfo.value.code == "UNAVAILABLE"


@pytest.mark.asyncio
async def test_tls_against_plaintext_server(server):
    async with grpcchannel(Endpoint.parse(server.address, encrypted=True)) as transport:
        with pytest.raises(EncryptionMismatchError) as excinfo:
            await ReflectionNegotiator(transport).negotiate()
    assert excinfo.value.kind == "encryption_mismatch"
