import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from google.protobuf.message import DecodeError
from grpcexplorer import constants
from grpcexplorer.helper import helper
from grpcexplorer.grpcchannel import grpcchannel
from grpcexplorer.SchemaRegistry import SchemaRegistry
from grpcexplorer.DescriptorPoolBuilder import DescriptorPoolBuilder
from grpcexplorer.DynamicMessageFactory import DynamicMessageFactory
from grpcexplorer.ProtobufConverter import ProtobufConverter
from grpcexplorer.errors import (
    NotFoundError, StreamingUnsupportedError, MissingTypeError, CodecError, ReflectionError,
    DependencyResolutionError, CircularDependencyError, DependencyDepthExceededError,
    RegistryInconsistencyError,
)


@dataclass
class InvocationResult:
    result: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    loaded_types: List[str] = field(default_factory=list)


def extract_missing_type(error_msg: str) -> Optional[str]:
    """Pulls the type name out of a missing type message."""
    match = re.search(r"no such Type or Enum '(.+?)'", error_msg)
    if match:
        return match.group(1)

    patterns = [
        r"no such type:? '?([\w.]+)'?",
        r"Couldn't find message ([\w.]+)",
    ]
    for pattern in patterns:
        match = re.search(pattern, error_msg, re.IGNORECASE)
        if match:
            return match.group(1)
    return None


class InvocationEngine(helper):
    """Encodes, sends and decodes unary calls using the registry's types."""

    def __init__(self, transport: grpcchannel, registry: SchemaRegistry, builder: DescriptorPoolBuilder,
                 factory: Optional[DynamicMessageFactory] = None,
                 max_depth: int = constants.MAX_RECURSION_DEPTH):
        super().__init__()
        self.transport = transport
        self.registry = registry
        self.builder = builder
        self.factory = factory or DynamicMessageFactory(registry)
        self.max_depth = max_depth

    def resolve(self, service_name: str, method_name: str):
        service = self.registry.lookup_service(service_name)
        if service is None:
            raise NotFoundError(service_name)
        method = service.method(method_name)
        if method is None:
            raise NotFoundError(service_name, method_name, service.method_names)
        if method.client_streaming or method.server_streaming:
            raise StreamingUnsupportedError(method.full_name, method.client_streaming, method.server_streaming)
        return service, method

    async def invoke(self, service_name: str, method_name: str, params: Optional[Dict[str, Any]] = None,
                     timeout_ms: int = constants.DEFAULT_TIMEOUT_MS) -> InvocationResult:
        service, method = self.resolve(service_name, method_name)
        loaded_types: List[str] = []

        request_bytes, warnings = await self.with_recovery(
            lambda: self.encode(method.request_type, params), loaded_types
        )
        path = f"/{service.full_name}/{method.name}"
        self.logger.info(f"Invoking {path} on {self.transport.endpoint.target}")
        response_bytes = await self.transport.unary_call(path, request_bytes, timeout_ms)

        result = await self.with_recovery(
            lambda: self.decode(method.response_type, response_bytes), loaded_types
        )
        return InvocationResult(result=result, warnings=warnings, loaded_types=loaded_types)

    def encode(self, type_name: str, params: Optional[Dict[str, Any]]):
        message_class = self.factory.get_message_class(type_name)
        warnings: List[str] = []
        message = ProtobufConverter.to_protobuf(params or {}, message_class, warnings)
        return message.SerializeToString(), warnings

    def decode(self, type_name: str, data: bytes) -> Dict[str, Any]:
        message = self.factory.get_message_class(type_name)()
        try:
            message.ParseFromString(data)
        except DecodeError as e:
            self.log(function_name='decode', args=[type_name, len(data)], exception=e)
            raise CodecError(f"Could not decode {type_name}: {e}") from e
        return ProtobufConverter.to_dict(message)

    async def with_recovery(self, operation, loaded_types: List[str]):
        """
        Runs ``operation``; each time it fails on a missing type, that type is
        fetched and the operation retried. ``loaded_types`` is shared across
        the calls of one invocation so the depth limit covers encode and decode.
        """
        while True:
            try:
                return operation()
            except MissingTypeError as e:
                type_name = extract_missing_type(str(e))
                if type_name is None:
                    raise

                if type_name in loaded_types:
                    raise CircularDependencyError(
                        f"Circular dependency detected: {type_name} is still missing after loading it",
                        loaded_types,
                    ) from e
                if type_name in self.registry:
                    raise RegistryInconsistencyError(
                        f"Type {type_name} is registered but reported missing", loaded_types
                    ) from e
                if len(loaded_types) >= self.max_depth:
                    raise DependencyDepthExceededError(
                        f"Maximum dependency depth ({self.max_depth}) exceeded while loading {type_name}",
                        loaded_types,
                    ) from e

                self.logger.info(f"Loading missing type {type_name} ({len(loaded_types) + 1}/{self.max_depth})")
                try:
                    await self.builder.discover_one(type_name)
                except ReflectionError as reflection_error:
                    raise DependencyResolutionError(
                        f"Could not load missing type {type_name}: {reflection_error}", loaded_types
                    ) from reflection_error
                loaded_types.append(type_name)
