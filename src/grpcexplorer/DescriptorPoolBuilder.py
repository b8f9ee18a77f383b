import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from google.protobuf import descriptor_pb2
from google.protobuf.message import DecodeError
from grpc_reflection.v1alpha import reflection_pb2
from grpcexplorer import constants
from grpcexplorer.helper import helper
from grpcexplorer.grpcchannel import grpcchannel
from grpcexplorer.ReflectionNegotiator import ReflectionNegotiator, exchange
from grpcexplorer.SchemaRegistry import SchemaRegistry
from grpcexplorer.errors import ExplorerError, CodecError


@dataclass
class DiscoveryResult:
    requested: List[str] = field(default_factory=list)
    loaded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    retried: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


def is_reflection_service(name: str) -> bool:
    return name.startswith(constants.REFLECTION_SERVICE_PREFIX) or "ServerReflection" in name


class DescriptorPoolBuilder(helper):
    """Fetches file descriptors through reflection and merges them into a registry."""

    def __init__(self, transport: grpcchannel, negotiator: ReflectionNegotiator, registry: SchemaRegistry,
                 timeout_ms: int = constants.REFLECTION_TIMEOUT_MS):
        super().__init__()
        self.transport = transport
        self.negotiator = negotiator
        self.registry = registry
        self.timeout_ms = timeout_ms
        self.seen_files = set()

    async def _request(self, request, symbol: str):
        dialect = await self.negotiator.negotiate()
        return await exchange(self.transport, dialect.path, request, self.timeout_ms / 1000.0, symbol)

    async def list_services(self) -> List[str]:
        response = await self._request(reflection_pb2.ServerReflectionRequest(list_services="*"), "*")
        return [service.name for service in response.list_services_response.service]

    async def discover_one(self, symbol: str) -> List[str]:
        """
        Fetches the file declaring ``symbol`` (with whatever dependencies the
        server sends along) and merges it. Returns the newly merged filenames.
        """
        symbol = symbol.lstrip(".")
        request = reflection_pb2.ServerReflectionRequest(file_containing_symbol=symbol)
        response = await self._request(request, symbol)
        merged = self.merge_response(response)
        self.logger.debug(f"Loaded {symbol}: {len(merged)} new file(s) {merged}")
        return merged

    def merge_response(self, response) -> List[str]:
        merged = []
        for raw in response.file_descriptor_response.file_descriptor_proto:
            fd_proto = descriptor_pb2.FileDescriptorProto()
            try:
                fd_proto.ParseFromString(raw)
            except DecodeError as e:
                self.log(function_name='merge_response', args=[len(raw)], exception=e)
                raise CodecError(f"Malformed file descriptor from reflection: {e}") from e

            if fd_proto.name in self.seen_files:
                continue
            self.seen_files.add(fd_proto.name)
            if self.registry.merge_file(fd_proto):
                merged.append(fd_proto.name)
        return merged

    async def discover_all(self, batch_size: Optional[int] = None) -> DiscoveryResult:
        """
        Loads every service the endpoint lists.

        Services are fetched in concurrent batches, each batch finishing before
        the next starts. Failures are retried once, one at a time; whatever
        still fails is reported in the result instead of raised.
        """
        batch_size = batch_size or constants.DISCOVERY_BATCH_SIZE
        services = [name for name in await self.list_services() if not is_reflection_service(name)]
        result = DiscoveryResult(requested=services)
        self.logger.info(f"Discovering {len(services)} services on {self.transport.endpoint.target}")

        for start in range(0, len(services), batch_size):
            batch = services[start:start + batch_size]
            outcomes = await asyncio.gather(*(self.discover_one(name) for name in batch), return_exceptions=True)
            for name, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, ExplorerError):
                        raise outcome
                    self.logger.warning(f"Failed to load service {name}: {outcome}")
                    result.failed[name] = str(outcome)
                else:
                    result.loaded.append(name)

        result.retried = list(result.failed)
        for name in result.retried:
            try:
                await self.discover_one(name)
            except ExplorerError as e:
                self.logger.warning(f"Retry failed for service {name}: {e}")
                result.failed[name] = str(e)
                continue
            del result.failed[name]
            result.loaded.append(name)

        self.logger.info(
            f"Discovery finished: {len(result.loaded)} loaded, {len(result.failed)} failed "
            f"out of {len(services)}"
        )
        return result
