"""JSON Schema generation from Python signatures and argument validation."""

import inspect
import types
from typing import Any, Callable, Dict, List, Optional, Union, get_args, get_origin

from .errors import ValidationError

# PEP 604 unions (str | None)
_UNION_TYPE = getattr(types, "UnionType", None)

_TYPE_MAP = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "array": list,
    "object": dict,
    "null": type(None)
}


def python_type_to_json_schema(python_type: Any) -> Dict[str, Any]:
    """Convert a Python type annotation to JSON Schema.

    Args:
        python_type: Python type to convert

    Returns:
        JSON Schema representation, ``{}`` for types it cannot describe
    """
    if python_type is type(None):
        return {"type": "null"}

    if python_type is str:
        return {"type": "string"}
    elif python_type is bool:
        return {"type": "boolean"}
    elif python_type is int:
        return {"type": "integer"}
    elif python_type is float:
        return {"type": "number"}
    elif python_type is list:
        return {"type": "array"}
    elif python_type is dict:
        return {"type": "object"}

    origin = get_origin(python_type)
    args = get_args(python_type)

    if origin is Union or origin is _UNION_TYPE:
        non_none_args = [arg for arg in args if arg is not type(None)]
        if len(non_none_args) == 1 and len(args) == 2:
            # Optional[T]
            schema = python_type_to_json_schema(non_none_args[0])
            if "type" not in schema:
                return {"oneOf": [schema, {"type": "null"}]} if schema else {}
            if isinstance(schema["type"], list):
                schema["type"] = schema["type"] + ["null"]
            else:
                schema["type"] = [schema["type"], "null"]
            return schema
        return {"oneOf": [python_type_to_json_schema(arg) for arg in args]}

    if origin is list:
        if args:
            return {"type": "array", "items": python_type_to_json_schema(args[0])}
        return {"type": "array"}

    if origin is dict:
        if len(args) >= 2:
            return {"type": "object", "additionalProperties": python_type_to_json_schema(args[1])}
        return {"type": "object"}

    return {}


def generate_function_input_schema(func: Callable) -> Dict[str, Any]:
    """Generate an object schema describing a function's keyword parameters.

    Parameters without a default are required. ``self`` and ``*args``/``**kwargs``
    are skipped.
    """
    sig = inspect.signature(func)
    properties = {}
    required = []

    for param_name, param in sig.parameters.items():
        if param_name == "self":
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        param_type = param.annotation if param.annotation is not inspect.Parameter.empty else Any
        properties[param_name] = python_type_to_json_schema(param_type)

        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _matches_type(value: Any, expected_type: Union[str, List[str]]) -> bool:
    if isinstance(expected_type, list):
        return any(_matches_type(value, t) for t in expected_type)

    python_type = _TYPE_MAP.get(expected_type)
    if python_type is None:
        return True  # Unknown type, allow anything
    # bool is an int subclass but never a JSON number
    if isinstance(value, bool) and expected_type in ("integer", "number"):
        return False
    return isinstance(value, python_type)


def validate_against_schema(value: Any, schema: Dict[str, Any]) -> Optional[str]:
    """Validate a value against a JSON Schema subset.

    Supports ``type``, ``enum``, ``oneOf``, ``items``, ``properties``,
    ``required`` and ``additionalProperties``.

    Args:
        value: Value to validate
        schema: JSON Schema to validate against

    Returns:
        Error message if validation fails, None if valid
    """
    if not schema:
        return None

    if "type" in schema and not _matches_type(value, schema["type"]):
        if isinstance(schema["type"], list):
            return f"Value {value!r} does not match any of the allowed types {schema['type']}"
        return f"Value {value!r} does not match expected type {schema['type']}"

    if "enum" in schema and value not in schema["enum"]:
        return f"Value {value!r} is not one of {schema['enum']}"

    if "oneOf" in schema:
        if not any(validate_against_schema(value, sub) is None for sub in schema["oneOf"]):
            return f"Value {value!r} does not match any of the oneOf schemas"

    if isinstance(value, list) and "items" in schema:
        for i, item in enumerate(value):
            error = validate_against_schema(item, schema["items"])
            if error:
                return f"Array item {i}: {error}"

    if isinstance(value, dict):
        for required_prop in schema.get("required", []):
            if required_prop not in value:
                return f"Missing required property: {required_prop}"

        properties = schema.get("properties", {})
        for prop_name, prop_value in value.items():
            if prop_name in properties:
                error = validate_against_schema(prop_value, properties[prop_name])
                if error:
                    return f"Property {prop_name}: {error}"
                continue
            extra = schema.get("additionalProperties", True)
            if extra is False:
                return f"Unexpected property: {prop_name}"
            if isinstance(extra, dict):
                error = validate_against_schema(prop_value, extra)
                if error:
                    return f"Property {prop_name}: {error}"

    return None


def validate_arguments(arguments: Any, schema: Dict[str, Any]) -> Dict[str, Any]:
    """Validate call arguments and keep the ones the schema declares.

    Undeclared arguments are dropped unless the schema allows additional
    properties explicitly.

    Raises:
        ValidationError: If the arguments do not satisfy the schema
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValidationError("Arguments must be an object")

    error = validate_against_schema(arguments, schema)
    if error:
        raise ValidationError(f"Argument validation failed: {error}")

    properties = schema.get("properties")
    if properties is None or schema.get("additionalProperties") not in (None, False):
        return dict(arguments)
    return {name: value for name, value in arguments.items() if name in properties}
