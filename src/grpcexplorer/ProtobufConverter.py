import base64
import binascii
from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import Message
from typing import Any, Dict, List, Optional
from grpcexplorer.helper import helper
from grpcexplorer.errors import CodecError
helpercls = helper()


class ProtobufConverter:
    """Best-effort converter between JSON-shaped dicts and dynamic protobuf messages."""

    WRAPPER_TYPES = {
        'google.protobuf.DoubleValue',
        'google.protobuf.FloatValue',
        'google.protobuf.Int64Value',
        'google.protobuf.UInt64Value',
        'google.protobuf.Int32Value',
        'google.protobuf.UInt32Value',
        'google.protobuf.BoolValue',
        'google.protobuf.StringValue',
        'google.protobuf.BytesValue',
    }

    # accept their canonical JSON string form, e.g. "2024-01-01T00:00:00Z" or "3.5s"
    JSON_STRING_TYPES = {
        'google.protobuf.Timestamp',
        'google.protobuf.Duration',
        'google.protobuf.FieldMask',
    }

    INTEGER_TYPES = (
        FieldDescriptor.TYPE_INT32, FieldDescriptor.TYPE_INT64,
        FieldDescriptor.TYPE_UINT32, FieldDescriptor.TYPE_UINT64,
        FieldDescriptor.TYPE_SINT32, FieldDescriptor.TYPE_SINT64,
        FieldDescriptor.TYPE_FIXED32, FieldDescriptor.TYPE_FIXED64,
        FieldDescriptor.TYPE_SFIXED32, FieldDescriptor.TYPE_SFIXED64,
    )

    LONG_TYPES = (
        FieldDescriptor.TYPE_INT64, FieldDescriptor.TYPE_UINT64,
        FieldDescriptor.TYPE_SINT64, FieldDescriptor.TYPE_FIXED64,
        FieldDescriptor.TYPE_SFIXED64,
    )

    @classmethod
    def to_protobuf(
        cls,
        input_data: Optional[Dict[str, Any]],
        message_class,
        warnings: Optional[List[str]] = None,
        path: str = "",
    ) -> Message:
        """Convert dictionary to protobuf message.

        Unknown fields are skipped and values that cannot be coerced are left
        at their default; both are reported through ``warnings``.

        Args:
            input_data: Input dictionary (``None`` means an empty message).
            message_class: Protobuf message class or instance.
            warnings: Optional list collecting human-readable warnings.

        Returns:
            Populated protobuf message.
        """
        msg = message_class() if isinstance(message_class, type) else message_class
        warnings = warnings if warnings is not None else []

        if input_data is None:
            return msg
        if not isinstance(input_data, dict):
            raise CodecError(
                f"Expected an object for '{path or msg.DESCRIPTOR.full_name}', got {type(input_data).__name__}"
            )

        descriptor = msg.DESCRIPTOR
        for input_name, value in input_data.items():
            field = descriptor.fields_by_name.get(input_name) or descriptor.fields_by_camelcase_name.get(input_name)
            field_path = f"{path}.{input_name}" if path else input_name
            if field is None:
                cls._warn(warnings, f"Unknown field '{field_path}' ignored")
                continue

            try:
                if field.containing_oneof:
                    current_field = msg.WhichOneof(field.containing_oneof.name)
                    if current_field and current_field != field.name:
                        cls._warn(warnings, f"Overwriting oneof field '{current_field}' with '{field.name}'")

                if cls._is_map_field(field):
                    cls._set_map(msg, field, value, warnings, field_path)
                elif field.is_repeated:
                    if not isinstance(value, list):
                        value = [value]
                    repeated_field = getattr(msg, field.name)
                    for index, item in enumerate(value):
                        item_path = f"{field_path}[{index}]"
                        if field.message_type:
                            cls._set_message(repeated_field.add(), field, item, warnings, item_path)
                        else:
                            try:
                                repeated_field.append(cls._convert_single_value(item, field))
                            except (ValueError, TypeError) as e:
                                cls._warn(warnings, f"Skipped '{item_path}': {e}")
                elif field.message_type:
                    if value is None:
                        continue
                    cls._set_message(getattr(msg, field.name), field, value, warnings, field_path)
                else:
                    setattr(msg, field.name, cls._convert_single_value(value, field))

            except (ValueError, TypeError, CodecError) as e:
                cls._warn(warnings, f"Failed to set field '{field_path}': {e}")

        return msg

    @classmethod
    def _set_message(cls, target: Message, field: FieldDescriptor, value: Any, warnings, path):
        full_name = field.message_type.full_name
        if full_name in cls.WRAPPER_TYPES:
            inner = value.get('value') if isinstance(value, dict) else value
            target.value = cls._convert_single_value(inner, field.message_type.fields_by_name['value'])
        elif full_name in cls.JSON_STRING_TYPES and isinstance(value, str):
            target.FromJsonString(value)
        else:
            cls.to_protobuf(value, target, warnings, path)
            # an explicitly given empty object still marks the field as present
            target.SetInParent()

    @classmethod
    def _set_map(cls, msg: Message, field: FieldDescriptor, value: Any, warnings, path):
        if not isinstance(value, dict):
            raise TypeError(f"map field '{path}' expects an object")
        key_field = field.message_type.fields_by_name['key']
        value_field = field.message_type.fields_by_name['value']
        container = getattr(msg, field.name)
        for raw_key, raw_value in value.items():
            key = cls._convert_single_value(raw_key, key_field)
            if value_field.message_type:
                cls._set_message(container[key], value_field, raw_value, warnings, f"{path}[{raw_key}]")
            else:
                container[key] = cls._convert_single_value(raw_value, value_field)

    @classmethod
    def _is_map_field(cls, field: FieldDescriptor) -> bool:
        return (field.is_repeated
                and field.message_type is not None
                and field.message_type.GetOptions().map_entry)

    @classmethod
    def _convert_single_value(cls, value: Any, field: FieldDescriptor) -> Any:
        """Convert a single value to the correct protobuf type."""
        if value is None:
            return field.default_value

        # Handle enums
        if field.enum_type:
            if isinstance(value, str):
                enum_val = field.enum_type.values_by_name.get(value)
                if enum_val:
                    return enum_val.number
                if not value.lstrip("-").isdigit():
                    raise ValueError(f"'{value}' is not a value of {field.enum_type.full_name}")
            return int(value)

        try:
            if field.type == FieldDescriptor.TYPE_BOOL:
                if isinstance(value, str):
                    return value.strip().lower() not in ('false', '0', '')
                return bool(value)
            elif field.type in cls.INTEGER_TYPES:
                if isinstance(value, float) and not value.is_integer():
                    raise ValueError("fractional value")
                return int(value)
            elif field.type in (FieldDescriptor.TYPE_FLOAT, FieldDescriptor.TYPE_DOUBLE):
                return float(value)
            elif field.type == FieldDescriptor.TYPE_STRING:
                return value if isinstance(value, str) else str(value)
            elif field.type == FieldDescriptor.TYPE_BYTES:
                if isinstance(value, str):
                    try:
                        return base64.b64decode(value, validate=True)
                    except (binascii.Error, ValueError):
                        return value.encode()
                return bytes(value)
        except (ValueError, TypeError) as e:
            raise ValueError(
                f"Cannot convert value '{value}' to {cls._get_type_name(field.type)} "
                f"for field '{field.name}'"
            ) from e

        return value

    @classmethod
    def _get_type_name(cls, field_type: int) -> str:
        type_names = {
            FieldDescriptor.TYPE_DOUBLE: "double",
            FieldDescriptor.TYPE_FLOAT: "float",
            FieldDescriptor.TYPE_INT64: "int64",
            FieldDescriptor.TYPE_UINT64: "uint64",
            FieldDescriptor.TYPE_INT32: "int32",
            FieldDescriptor.TYPE_FIXED64: "fixed64",
            FieldDescriptor.TYPE_FIXED32: "fixed32",
            FieldDescriptor.TYPE_BOOL: "bool",
            FieldDescriptor.TYPE_STRING: "string",
            FieldDescriptor.TYPE_BYTES: "bytes",
            FieldDescriptor.TYPE_UINT32: "uint32",
            FieldDescriptor.TYPE_ENUM: "enum",
            FieldDescriptor.TYPE_SFIXED32: "sfixed32",
            FieldDescriptor.TYPE_SFIXED64: "sfixed64",
            FieldDescriptor.TYPE_SINT32: "sint32",
            FieldDescriptor.TYPE_SINT64: "sint64",
        }
        return type_names.get(field_type, "unknown")

    @classmethod
    def _warn(cls, warnings: List[str], message: str):
        warnings.append(message)
        helpercls.logger.warning(message)

    @classmethod
    def to_dict(cls, msg: Message) -> Dict[str, Any]:
        """Convert protobuf message to a dictionary holding every field.

        Unset message fields are ``None``, enums are symbolic, 64-bit integers
        are strings and bytes are base64.
        """
        result = {}
        for field in msg.DESCRIPTOR.fields:
            name = field.name
            value = getattr(msg, name)

            if cls._is_map_field(field):
                value_field = field.message_type.fields_by_name['value']
                result[name] = {
                    str(k): cls._value_to_json(v, value_field)
                    for k, v in value.items()
                }
                continue

            if field.is_repeated:
                result[name] = [cls._value_to_json(v, field) for v in value]
                continue

            if field.cpp_type == FieldDescriptor.CPPTYPE_MESSAGE:
                result[name] = cls.to_dict(value) if msg.HasField(name) else None
            else:
                result[name] = cls._value_to_json(value, field)  # include default even if not set

        return result

    @classmethod
    def _value_to_json(cls, value: Any, field: FieldDescriptor) -> Any:
        if isinstance(value, Message):
            return cls.to_dict(value)
        if field.enum_type:
            enum_value = field.enum_type.values_by_number.get(value)
            return enum_value.name if enum_value else value
        if field.type in cls.LONG_TYPES:
            return str(value)
        if field.type == FieldDescriptor.TYPE_BYTES:
            return base64.b64encode(value).decode('ascii')
        return value
