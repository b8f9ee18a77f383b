from grpcexplorer.SchemaRegistry import SchemaRegistry
from grpcexplorer.TypeIntrospector import TypeIntrospector
import testprotos


def _by_name(fields):
    return {field.name: field for field in fields}


def test_primitive_fields(registry):
    definition = TypeIntrospector(registry).describe("pkg.HelloRequest")
    assert definition.name == "HelloRequest"
    assert definition.full_name == "pkg.HelloRequest"
    [name] = definition.fields
    assert (name.name, name.type, name.rule, name.nested) == ("name", "string", "singular", False)
    assert name.enum_values is None


def test_enum_fields_list_symbols(registry):
    fields = _by_name(TypeIntrospector(registry).describe("common.Meta").fields)
    assert fields["status"].enum_values == ["STATUS_UNKNOWN", "STATUS_OK"]
    assert fields["status"].nested is False
    assert fields["labels"].nested is True


def test_self_reference_stops_at_first_repeat(registry):
    fields = _by_name(TypeIntrospector(registry).describe("common.Node").fields)
    assert fields["children"].nested is True
    assert fields["children"].nested_fields is None
    assert fields["parent"].nested_fields is None


def test_nested_messages_expand_once_per_path(registry):
    item = _by_name(TypeIntrospector(registry).describe("inventory.Item").fields)
    tree = _by_name(item["tree"].nested_fields)
    assert tree["name"].type == "string"
    assert tree["children"].nested is True
    assert tree["children"].nested_fields is None
    meta = _by_name(item["meta"].nested_fields)
    assert meta["status"].enum_values == ["STATUS_UNKNOWN", "STATUS_OK"]


def test_unknown_root_gives_empty_definition(registry):
    definition = TypeIntrospector(registry).describe("pkg.Nope")
    assert definition.name == "Nope"
    assert definition.fields == []


def test_unresolved_fields_stay_unexpanded():
    registry = SchemaRegistry()
    registry.merge_file(testprotos.inventory_file())
    introspector = TypeIntrospector(registry)

    fields = _by_name(introspector.describe("inventory.Item").fields)
    assert fields["meta"].nested is True
    assert fields["meta"].nested_fields is None
    assert introspector.unresolved("inventory.Item") == ["common.Meta", "common.Node"]
    assert introspector.unresolved("inventory.GetItemRequest") == []


def test_to_dict_is_json_shaped(registry):
    data = TypeIntrospector(registry).describe("pkg.HelloReply").to_dict()
    assert data == {
        "name": "HelloReply",
        "full_name": "pkg.HelloReply",
        "fields": [{
            "name": "message", "type": "string", "rule": "singular",
            "nested": False, "enum_values": None, "nested_fields": None,
        }],
    }


def test_every_scalar_type_keeps_its_proto_name():
    registry = SchemaRegistry()
    registry.merge_file(testprotos.scalars_file())
    fields = TypeIntrospector(registry).describe("scalars.AllScalars").fields
    singular = [field for field in fields if field.rule == "singular"]
    repeated = [field for field in fields if field.rule == "repeated"]
    expected = [name for name, _ in testprotos.SCALAR_TYPES]

    assert [field.type for field in singular] == expected
    assert [field.type for field in repeated] == expected
    assert all(field.nested is False and field.enum_values is None for field in fields)
