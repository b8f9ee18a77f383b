"""In-memory schema registry built from reflected file descriptors.

Nodes live in a flat arena keyed by fully-qualified name, so self-referential
and mutually recursive messages are plain string lookups. A namespace tree
(namespace path -> child names, rooted at "") mirrors package and message
nesting for traversal.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
from google.protobuf import descriptor_pb2

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto

PRIMITIVE_TYPE_NAMES = {
    FieldDescriptorProto.TYPE_DOUBLE: "double",
    FieldDescriptorProto.TYPE_FLOAT: "float",
    FieldDescriptorProto.TYPE_INT64: "int64",
    FieldDescriptorProto.TYPE_UINT64: "uint64",
    FieldDescriptorProto.TYPE_INT32: "int32",
    FieldDescriptorProto.TYPE_FIXED64: "fixed64",
    FieldDescriptorProto.TYPE_FIXED32: "fixed32",
    FieldDescriptorProto.TYPE_BOOL: "bool",
    FieldDescriptorProto.TYPE_STRING: "string",
    FieldDescriptorProto.TYPE_BYTES: "bytes",
    FieldDescriptorProto.TYPE_UINT32: "uint32",
    FieldDescriptorProto.TYPE_SFIXED32: "sfixed32",
    FieldDescriptorProto.TYPE_SFIXED64: "sfixed64",
    FieldDescriptorProto.TYPE_SINT32: "sint32",
    FieldDescriptorProto.TYPE_SINT64: "sint64",
}


def field_type_name(field_proto: FieldDescriptorProto) -> Tuple[str, bool]:
    """Returns (type, is_reference) for a raw field descriptor."""
    if field_proto.type_name:
        return field_proto.type_name.lstrip("."), True
    if field_proto.type in PRIMITIVE_TYPE_NAMES:
        return PRIMITIVE_TYPE_NAMES[field_proto.type], False
    return "string", False


def field_rule(field_proto: FieldDescriptorProto, syntax: str) -> str:
    if field_proto.label == FieldDescriptorProto.LABEL_REPEATED:
        return "repeated"
    if field_proto.label == FieldDescriptorProto.LABEL_REQUIRED:
        return "required"
    if syntax == "proto3" and not field_proto.proto3_optional:
        return "singular"
    return "optional"


@dataclass
class FieldInfo:
    name: str
    number: int
    type: str
    rule: str
    is_reference: bool = False


@dataclass
class MessageNode:
    name: str
    full_name: str
    fields: List[FieldInfo]
    file: str
    top_level: str
    proto: descriptor_pb2.DescriptorProto = field(repr=False)
    kind: str = "message"


@dataclass
class EnumNode:
    name: str
    full_name: str
    values: List[Tuple[str, int]]
    file: str
    top_level: str
    kind: str = "enum"

    @property
    def symbols(self) -> List[str]:
        return [name for name, _ in self.values]


@dataclass
class MethodInfo:
    name: str
    full_name: str
    request_type: str
    response_type: str
    client_streaming: bool = False
    server_streaming: bool = False


@dataclass
class ServiceNode:
    name: str
    full_name: str
    methods: List[MethodInfo]
    file: str
    kind: str = "service"

    def method(self, name: str) -> Optional[MethodInfo]:
        for method in self.methods:
            if method.name == name:
                return method
        return None

    @property
    def method_names(self) -> List[str]:
        return [method.name for method in self.methods]


Node = Union[MessageNode, EnumNode, ServiceNode]


class SchemaRegistry:

    def __init__(self):
        self.nodes: Dict[str, Node] = {}
        self.namespaces: Dict[str, List[str]] = {"": []}
        self.files: Dict[str, descriptor_pb2.FileDescriptorProto] = {}
        self.version = 0

    def __contains__(self, full_name: str) -> bool:
        return full_name in self.nodes

    def __len__(self):
        return len(self.nodes)

    def lookup(self, full_name: str) -> Optional[Node]:
        return self.nodes.get(full_name.lstrip("."))

    def lookup_message(self, full_name: str) -> Optional[MessageNode]:
        node = self.lookup(full_name)
        return node if isinstance(node, MessageNode) else None

    def lookup_enum(self, full_name: str) -> Optional[EnumNode]:
        node = self.lookup(full_name)
        return node if isinstance(node, EnumNode) else None

    def lookup_service(self, full_name: str) -> Optional[ServiceNode]:
        node = self.lookup(full_name)
        return node if isinstance(node, ServiceNode) else None

    def children(self, namespace: str = "") -> List[str]:
        return list(self.namespaces.get(namespace, []))

    def services(self) -> List[ServiceNode]:
        return [node for node in self.nodes.values() if isinstance(node, ServiceNode)]

    def merge_file(self, fd_proto: descriptor_pb2.FileDescriptorProto) -> bool:
        """Adds every declaration of a file. Returns False if the file was already merged."""
        if fd_proto.name in self.files:
            return False
        self.files[fd_proto.name] = fd_proto

        package = fd_proto.package
        namespace = self._ensure_namespace(package)
        syntax = fd_proto.syntax or "proto2"

        for enum_proto in fd_proto.enum_type:
            full_name = _join(namespace, enum_proto.name)
            self._add_enum(namespace, enum_proto, fd_proto.name, full_name)

        for msg_proto in fd_proto.message_type:
            full_name = _join(namespace, msg_proto.name)
            self._add_message(namespace, msg_proto, fd_proto.name, syntax, full_name)

        for svc_proto in fd_proto.service:
            self._add_service(namespace, svc_proto, fd_proto.name)

        return True

    def _ensure_namespace(self, path: str) -> str:
        if path in self.namespaces:
            return path
        parent, _, name = path.rpartition(".")
        self._ensure_namespace(parent)
        self.namespaces[path] = []
        if name not in self.namespaces[parent]:
            self.namespaces[parent].append(name)
        return path

    def _insert(self, namespace: str, node: Node) -> bool:
        # duplicate declarations keep the first definition
        if node.full_name in self.nodes:
            return False
        self.nodes[node.full_name] = node
        children = self.namespaces.setdefault(namespace, [])
        if node.name not in children:
            children.append(node.name)
        self.version += 1
        return True

    def _add_enum(self, namespace, enum_proto, file_name, top_level):
        node = EnumNode(
            name=enum_proto.name,
            full_name=_join(namespace, enum_proto.name),
            values=[(value.name, value.number) for value in enum_proto.value],
            file=file_name,
            top_level=top_level,
        )
        self._insert(namespace, node)

    def _add_message(self, namespace, msg_proto, file_name, syntax, top_level):
        full_name = _join(namespace, msg_proto.name)
        fields = []
        for field_proto in msg_proto.field:
            type_name, is_reference = field_type_name(field_proto)
            fields.append(FieldInfo(
                name=field_proto.name,
                number=field_proto.number,
                type=type_name,
                rule=field_rule(field_proto, syntax),
                is_reference=is_reference,
            ))

        node = MessageNode(
            name=msg_proto.name,
            full_name=full_name,
            fields=fields,
            file=file_name,
            top_level=top_level,
            proto=msg_proto,
        )
        self._insert(namespace, node)

        # messages are namespaces for their nested declarations
        self._ensure_namespace(full_name)
        for nested_enum in msg_proto.enum_type:
            self._add_enum(full_name, nested_enum, file_name, top_level)
        for nested_msg in msg_proto.nested_type:
            self._add_message(full_name, nested_msg, file_name, syntax, top_level)

    def _add_service(self, namespace, svc_proto, file_name):
        full_name = _join(namespace, svc_proto.name)
        methods = [
            MethodInfo(
                name=method.name,
                full_name=f"{full_name}.{method.name}",
                request_type=method.input_type.lstrip("."),
                response_type=method.output_type.lstrip("."),
                client_streaming=method.client_streaming,
                server_streaming=method.server_streaming,
            )
            for method in svc_proto.method
        ]
        self._insert(namespace, ServiceNode(
            name=svc_proto.name, full_name=full_name, methods=methods, file=file_name
        ))


def _join(namespace: str, name: str) -> str:
    return f"{namespace}.{name}" if namespace else name
