from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from grpcexplorer import constants
from grpcexplorer.helper import helper
from grpcexplorer.grpcchannel import Endpoint, grpcchannel
from grpcexplorer.SchemaRegistry import SchemaRegistry
from grpcexplorer.ReflectionNegotiator import ReflectionNegotiator
from grpcexplorer.DescriptorPoolBuilder import DescriptorPoolBuilder, DiscoveryResult, is_reflection_service
from grpcexplorer.TypeIntrospector import TypeIntrospector, MessageTypeDefinition, ServiceDescription
from grpcexplorer.InvocationEngine import InvocationEngine, InvocationResult
from grpcexplorer.OptimizedDiscovery import OptimizedDiscovery, merge_services
from grpcexplorer.errors import NotFoundError, ReflectionError


@dataclass
class DiscoveryReport:
    services: List[ServiceDescription]
    strategy: str
    result: Optional[DiscoveryResult] = None

    @property
    def failed(self) -> Dict[str, str]:
        return dict(self.result.failed) if self.result else {}


class grpcreflectionclient(helper):
    """
    Reflection session against one endpoint.

    Owns the channel, the negotiated dialect and the schema registry. Use as an
    async context manager so the channel is closed on every exit path::

        async with grpcreflectionclient("localhost:50051") as client:
            await client.discover_all()
            result = await client.invoke("pkg.Greeter", "SayHello", {"name": "x"})
    """

    def __init__(self, host: Union[str, Endpoint], encrypted: Optional[bool] = None,
                 ca_certificate: Optional[str] = None):
        super().__init__()
        self.endpoint = host if isinstance(host, Endpoint) else Endpoint.parse(host, encrypted)
        self.transport = grpcchannel(self.endpoint, ca_certificate)
        self.registry = SchemaRegistry()
        self.negotiator = ReflectionNegotiator(self.transport)
        self.builder = DescriptorPoolBuilder(self.transport, self.negotiator, self.registry)
        self.introspector = TypeIntrospector(self.registry)
        self.engine = InvocationEngine(self.transport, self.registry, self.builder)

    @property
    def dialect(self):
        return self.negotiator.dialect

    @property
    def seen_files(self):
        return self.builder.seen_files

    async def negotiate(self):
        return await self.negotiator.negotiate()

    async def list_services(self) -> List[str]:
        return await self.builder.list_services()

    async def discover_all(self, batch_size: Optional[int] = None) -> DiscoveryResult:
        return await self.builder.discover_all(batch_size)

    async def discover_one(self, symbol: str) -> List[str]:
        return await self.builder.discover_one(symbol)

    async def discover(self, optimized: bool = True, include_types: bool = False) -> DiscoveryReport:
        if optimized:
            services = await OptimizedDiscovery(self).discover()
            if services is not None:
                if not constants.OPTIMIZED_MERGE_STANDARD:
                    return DiscoveryReport(services=services, strategy="optimized")
                result = await self.discover_all()
                merged = merge_services(services, self.services(include_types))
                return DiscoveryReport(services=merged, strategy="optimized", result=result)

        result = await self.discover_all()
        return DiscoveryReport(services=self.services(include_types), strategy="standard", result=result)

    def services(self, include_types: bool = False) -> List[ServiceDescription]:
        """Registered services that have at least one method, reflection itself excluded."""
        return [
            self.introspector.describe_service(service, include_types)
            for service in self.registry.services()
            if service.methods and not is_reflection_service(service.full_name)
        ]

    def describe(self, type_name: str) -> MessageTypeDefinition:
        return self.introspector.describe(type_name)

    async def describe_type(self, type_name: str, max_fetches: int = constants.MAX_DESCRIBE_FETCHES) -> MessageTypeDefinition:
        """Loads ``type_name`` and the types its fields reference, then describes it."""
        attempted = set()
        fetches = 0
        while fetches < max_fetches:
            pending = [name for name in self.introspector.unresolved(type_name) if name not in attempted]
            if not pending:
                break
            for name in pending[:max_fetches - fetches]:
                attempted.add(name)
                fetches += 1
                try:
                    await self.discover_one(name)
                except ReflectionError as e:
                    self.logger.warning(f"Could not load type {name}: {e}")
        return self.describe(type_name)

    async def _ensure_service(self, service_name: str):
        if self.registry.lookup_service(service_name) is not None:
            return
        try:
            await self.discover_one(service_name)
        except ReflectionError as e:
            raise NotFoundError(service_name) from e

    async def describe_method(self, service_name: str, method_name: str) -> MessageTypeDefinition:
        await self._ensure_service(service_name)
        service = self.registry.lookup_service(service_name)
        if service is None:
            raise NotFoundError(service_name)
        method = service.method(method_name)
        if method is None:
            raise NotFoundError(service_name, method_name, service.method_names)
        return await self.describe_type(method.request_type)

    async def invoke(self, service_name: str, method_name: str, params: Optional[Dict[str, Any]] = None,
                     timeout_ms: int = constants.DEFAULT_TIMEOUT_MS) -> InvocationResult:
        await self._ensure_service(service_name)
        return await self.engine.invoke(service_name, method_name, params, timeout_ms)

    async def close(self):
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
