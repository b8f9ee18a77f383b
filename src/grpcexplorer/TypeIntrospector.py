from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set
from grpcexplorer.helper import helper
from grpcexplorer.SchemaRegistry import SchemaRegistry, MessageNode, EnumNode, ServiceNode


@dataclass
class MessageField:
    name: str
    type: str
    rule: str
    nested: bool = False
    enum_values: Optional[List[str]] = None
    nested_fields: Optional[List["MessageField"]] = None


@dataclass
class MessageTypeDefinition:
    name: str
    full_name: str
    fields: List[MessageField] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MethodDescription:
    name: str
    full_name: str
    service_name: str
    request_type: str
    response_type: str
    client_streaming: bool = False
    server_streaming: bool = False
    request_definition: Optional[MessageTypeDefinition] = None
    response_definition: Optional[MessageTypeDefinition] = None


@dataclass
class ServiceDescription:
    name: str
    full_name: str
    methods: List[MethodDescription] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def placeholder_definition(full_name: str) -> MessageTypeDefinition:
    """A definition whose fields are filled in later, once the type is fetched."""
    return MessageTypeDefinition(name=full_name.rsplit(".", 1)[-1], full_name=full_name, fields=[])


class TypeIntrospector(helper):
    """Expands registry message types into nested field trees."""

    def __init__(self, registry: SchemaRegistry):
        super().__init__()
        self.registry = registry

    def describe(self, type_name: str, visited: Optional[Set[str]] = None) -> MessageTypeDefinition:
        """
        Returns the definition of ``type_name`` with message fields expanded.

        ``visited`` holds the types on the current expansion path; a field whose
        type is already on the path is reported as nested but not expanded, so
        recursive messages terminate. Sibling fields get independent paths.
        """
        type_name = type_name.lstrip(".")
        node = self.registry.lookup_message(type_name)
        if node is None:
            self.logger.warning(f"Type {type_name} not found in registry, returning empty definition")
            return placeholder_definition(type_name)

        path = set(visited or ()) | {node.full_name}
        fields = [self._describe_field(node, field_info, path) for field_info in node.fields]
        return MessageTypeDefinition(name=node.name, full_name=node.full_name, fields=fields)

    def _describe_field(self, node: MessageNode, field_info, path: Set[str]) -> MessageField:
        if not field_info.is_reference:
            return MessageField(name=field_info.name, type=field_info.type, rule=field_info.rule)

        target = self.registry.lookup(field_info.type)
        if target is None:
            self.logger.warning(
                f"Could not resolve type {field_info.type} for field {node.full_name}.{field_info.name}"
            )
            return MessageField(name=field_info.name, type=field_info.type, rule=field_info.rule, nested=True)

        if isinstance(target, EnumNode):
            return MessageField(
                name=field_info.name,
                type=field_info.type,
                rule=field_info.rule,
                enum_values=target.symbols,
            )

        nested_fields = None
        if target.full_name not in path:
            nested_fields = self.describe(target.full_name, path).fields
        return MessageField(
            name=field_info.name,
            type=field_info.type,
            rule=field_info.rule,
            nested=True,
            nested_fields=nested_fields,
        )

    def unresolved(self, type_name: str) -> List[str]:
        """Referenced types reachable from ``type_name`` that the registry does not hold."""
        missing: List[str] = []
        seen: Set[str] = set()
        pending = [type_name.lstrip(".")]
        while pending:
            current = pending.pop(0)
            if current in seen:
                continue
            seen.add(current)
            node = self.registry.lookup(current)
            if node is None:
                missing.append(current)
                continue
            if isinstance(node, MessageNode):
                pending.extend(f.type for f in node.fields if f.is_reference)
        return missing

    def describe_service(self, service: ServiceNode, include_types: bool = False) -> ServiceDescription:
        methods = []
        for method in service.methods:
            methods.append(MethodDescription(
                name=method.name,
                full_name=method.full_name,
                service_name=service.full_name,
                request_type=method.request_type,
                response_type=method.response_type,
                client_streaming=method.client_streaming,
                server_streaming=method.server_streaming,
                request_definition=self.describe(method.request_type) if include_types else None,
                response_definition=self.describe(method.response_type) if include_types else None,
            ))
        return ServiceDescription(name=service.name, full_name=service.full_name, methods=methods)
