from google.protobuf import descriptor_pb2
from google.protobuf import descriptor_pool
from google.protobuf import message_factory
from typing import Dict, List, Set
from grpcexplorer.helper import helper
from grpcexplorer.errors import MissingTypeError, CodecError
from grpcexplorer.SchemaRegistry import SchemaRegistry, MessageNode


class DynamicMessageFactory(helper):
    """
    Builds protobuf message classes for registry types at runtime.

    For a requested type only the declarations it transitively references are
    loaded into a fresh DescriptorPool: every outermost declaration reached is
    copied out of its source file, and the copies are grouped back into
    per-file descriptors whose imports are recomputed from the references
    actually used. A reference that the registry cannot resolve raises
    MissingTypeError naming that type.
    """

    def __init__(self, registry: SchemaRegistry):
        super().__init__()
        self.registry = registry
        self._classes = {}
        self._version = registry.version

    def get_message_class(self, type_name: str):
        type_name = type_name.lstrip(".")
        if self._version != self.registry.version:
            self._classes = {}
            self._version = self.registry.version

        if type_name in self._classes:
            return self._classes[type_name]

        node = self.registry.lookup(type_name)
        if node is None:
            raise MissingTypeError(type_name)
        if not isinstance(node, MessageNode):
            raise CodecError(f"'{type_name}' is a {node.kind}, not a message")

        pool = self.build_pool(type_name)
        try:
            descriptor = pool.FindMessageTypeByName(type_name)
            message_class = message_factory.GetMessageClass(descriptor)
        except (KeyError, TypeError) as e:
            self.log(function_name='get_message_class', args=[type_name], exception=e)
            raise CodecError(f"Could not build message class for '{type_name}': {e}") from e

        self._classes[type_name] = message_class
        return message_class

    def build_pool(self, type_name: str) -> descriptor_pool.DescriptorPool:
        top_levels, file_deps = self._collect_closure(type_name)

        file_protos: Dict[str, descriptor_pb2.FileDescriptorProto] = {}
        for top_level in top_levels:
            node = self.registry.lookup(top_level)
            source = self.registry.files[node.file]
            fd = file_protos.get(node.file)
            if fd is None:
                fd = descriptor_pb2.FileDescriptorProto()
                fd.name = source.name
                fd.package = source.package
                fd.syntax = source.syntax
                if source.HasField('edition'):
                    fd.edition = source.edition
                if source.HasField('options'):
                    fd.options.CopyFrom(source.options)
                file_protos[node.file] = fd
            declaration = _find_top_level(source, top_level)
            if isinstance(declaration, descriptor_pb2.EnumDescriptorProto):
                fd.enum_type.add().CopyFrom(declaration)
            else:
                copied = fd.message_type.add()
                copied.CopyFrom(declaration)
                _strip_extensions(copied)

        for file_name, fd in file_protos.items():
            for dependency in sorted(file_deps.get(file_name, ())):
                fd.dependency.append(dependency)

        pool = descriptor_pool.DescriptorPool()
        added: Set[str] = set()

        def add(file_name):
            if file_name in added:
                return
            added.add(file_name)
            for dependency in file_protos[file_name].dependency:
                add(dependency)
            try:
                pool.Add(file_protos[file_name])
            except (TypeError, ValueError) as e:
                self.log(function_name='build_pool', args=[type_name, file_name], exception=e)
                raise CodecError(f"Could not load '{file_name}' for '{type_name}': {e}") from e

        for file_name in sorted(file_protos):
            add(file_name)
        return pool

    def _collect_closure(self, type_name: str):
        """Returns the outermost declarations needed by ``type_name`` and the file imports they imply."""
        top_levels: List[str] = []
        seen: Set[str] = set()
        file_deps: Dict[str, Set[str]] = {}
        pending = [type_name]

        while pending:
            current = pending.pop()
            node = self.registry.lookup(current)
            if node is None:
                raise MissingTypeError(current)
            if node.top_level in seen:
                continue
            seen.add(node.top_level)
            top_levels.append(node.top_level)

            container = self.registry.lookup(node.top_level)
            if not isinstance(container, MessageNode):
                continue
            for reference in _references(container.proto):
                target = self.registry.lookup(reference)
                if target is None:
                    raise MissingTypeError(reference)
                if target.file != container.file:
                    file_deps.setdefault(container.file, set()).add(target.file)
                pending.append(reference)

        return top_levels, file_deps


def _references(msg_proto: descriptor_pb2.DescriptorProto):
    for field_proto in msg_proto.field:
        if field_proto.type_name:
            yield field_proto.type_name.lstrip(".")
    for nested in msg_proto.nested_type:
        yield from _references(nested)


def _find_top_level(fd_proto: descriptor_pb2.FileDescriptorProto, full_name: str):
    prefix = f"{fd_proto.package}." if fd_proto.package else ""
    for enum_proto in fd_proto.enum_type:
        if prefix + enum_proto.name == full_name:
            return enum_proto
    for msg_proto in fd_proto.message_type:
        if prefix + msg_proto.name == full_name:
            return msg_proto
    raise CodecError(f"'{full_name}' is not declared in '{fd_proto.name}'")


def _strip_extensions(msg_proto: descriptor_pb2.DescriptorProto):
    # extensions declared inside messages are not needed to encode or decode them
    del msg_proto.extension[:]
    for nested in msg_proto.nested_type:
        _strip_extensions(nested)
