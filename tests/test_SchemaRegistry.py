from google.protobuf import descriptor_pb2
import testprotos
from grpcexplorer.SchemaRegistry import SchemaRegistry, MessageNode, EnumNode, ServiceNode


def test_merge_registers_every_declaration(registry):
    assert isinstance(registry.lookup("common.Node"), MessageNode)
    assert isinstance(registry.lookup(".common.Status"), EnumNode)
    assert isinstance(registry.lookup("common.Meta.LabelsEntry"), MessageNode)
    assert isinstance(registry.lookup_service("pkg.Greeter"), ServiceNode)
    assert registry.lookup("pkg.Missing") is None


def test_nested_declarations_keep_their_outermost_parent(registry):
    entry = registry.lookup("common.Meta.LabelsEntry")
    assert entry.top_level == "common.Meta"
    assert entry.file == "common.proto"


def test_namespace_tree():
    registry = SchemaRegistry()
    fd = descriptor_pb2.FileDescriptorProto(name="deep.proto", package="a.b.c", syntax="proto3")
    fd.message_type.add(name="Leaf")
    registry.merge_file(fd)

    assert registry.children("") == ["a"]
    assert registry.children("a") == ["b"]
    assert registry.children("a.b.c") == ["Leaf"]


def test_fields_carry_type_and_rule(registry):
    node = registry.lookup_message("common.Node")
    children = node.fields[1]
    assert (children.name, children.type, children.rule, children.is_reference) == (
        "children", "common.Node", "repeated", True
    )
    assert node.fields[0].type == "string"
    assert node.fields[0].rule == "singular"


def test_services_expose_methods(registry):
    greeter = registry.lookup_service("pkg.Greeter")
    assert greeter.method_names == ["SayHello", "Chat"]
    chat = greeter.method("Chat")
    assert chat.client_streaming and chat.server_streaming
    assert greeter.method("SayHello").request_type == "pkg.HelloRequest"


def test_merging_same_file_twice_is_a_noop(registry):
    version = registry.version
    size = len(registry)
    assert registry.merge_file(testprotos.common_file()) is False
    assert registry.version == version
    assert len(registry) == size


def test_duplicate_declaration_keeps_first_definition(registry):
    duplicate = descriptor_pb2.FileDescriptorProto(name="other.proto", package="common", syntax="proto3")
    duplicate.message_type.add(name="Node")
    assert registry.merge_file(duplicate) is True
    assert registry.lookup("common.Node").file == "common.proto"
    assert registry.children("common").count("Node") == 1
