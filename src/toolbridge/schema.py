"""JSON Schema -> host schema conversion.

Tool servers describe their parameters with JSON Schema.  The host works with
a small closed set of node types (:class:`SchemaNode` subclasses) built by
:func:`json_schema_to_host_schema`, and compiles them to pydantic models when
it needs to validate arguments or render a schema back to a UI.

Conversion precedence:

* ``enum`` wins over ``type`` and becomes a :class:`ChoiceSchema`.
* ``string`` / ``number`` / ``boolean`` / ``array`` / ``object`` map to their
  node types; ``number`` keeps ``minimum``/``maximum`` as inclusive bounds.
* Anything else (including ``integer`` and a missing ``type``) becomes
  :class:`AnySchema`.
* ``description`` and then ``default`` are attached after the primary
  conversion.
"""
from __future__ import annotations

import dataclasses
import keyword
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, create_model


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True, kw_only=True)
class SchemaNode:
    description: str | None = None
    default: Any = MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    def annotation(self, name: str = "Args") -> Any:
        return Any

    def field_info(self, required: bool, alias: str | None = None) -> Any:
        if self.has_default:
            return Field(default=self.default, alias=alias, description=self.description)
        if required:
            return Field(..., alias=alias, description=self.description)
        return Field(default=None, alias=alias, description=self.description)


@dataclass(frozen=True, kw_only=True)
class AnySchema(SchemaNode):
    pass


@dataclass(frozen=True, kw_only=True)
class StringSchema(SchemaNode):
    def annotation(self, name: str = "Args") -> Any:
        return str


@dataclass(frozen=True, kw_only=True)
class NumberSchema(SchemaNode):
    minimum: float | None = None
    maximum: float | None = None

    def annotation(self, name: str = "Args") -> Any:
        if self.minimum is None and self.maximum is None:
            return float
        return Annotated[float, Field(ge=self.minimum, le=self.maximum)]


@dataclass(frozen=True, kw_only=True)
class BooleanSchema(SchemaNode):
    def annotation(self, name: str = "Args") -> Any:
        return bool


@dataclass(frozen=True, kw_only=True)
class ChoiceSchema(SchemaNode):
    choices: tuple[Any, ...] = ()

    def annotation(self, name: str = "Args") -> Any:
        if not self.choices:
            return Any
        return Literal[self.choices]


@dataclass(frozen=True, kw_only=True)
class ArraySchema(SchemaNode):
    items: SchemaNode = field(default_factory=AnySchema)

    def annotation(self, name: str = "Args") -> Any:
        return list[self.items.annotation(f"{name}Item")]


@dataclass(frozen=True, kw_only=True)
class ObjectSchema(SchemaNode):
    fields: dict[str, SchemaNode] = field(default_factory=dict)
    required: frozenset[str] = frozenset()

    def is_required(self, key: str) -> bool:
        return key in self.required

    def annotation(self, name: str = "Args") -> Any:
        return build_model(name, self)


def json_schema_to_host_schema(schema: Any) -> SchemaNode:
    if not isinstance(schema, dict):
        return AnySchema()

    node: SchemaNode
    if "enum" in schema and isinstance(schema["enum"], list):
        node = ChoiceSchema(choices=tuple(schema["enum"]))
    else:
        kind = schema.get("type")
        if kind == "string":
            node = StringSchema()
        elif kind == "number":
            node = NumberSchema(
                minimum=_bound(schema.get("minimum")),
                maximum=_bound(schema.get("maximum")),
            )
        elif kind == "boolean":
            node = BooleanSchema()
        elif kind == "array":
            items = schema.get("items")
            node = ArraySchema(items=json_schema_to_host_schema(items) if items else AnySchema())
        elif kind == "object":
            properties = schema.get("properties")
            required = schema.get("required")
            if not isinstance(properties, dict):
                properties = {}
            if not isinstance(required, list):
                required = []
            node = ObjectSchema(
                fields={str(key): json_schema_to_host_schema(value) for key, value in properties.items()},
                required=frozenset(key for key in required if isinstance(key, str) and key in properties),
            )
        else:
            node = AnySchema()

    if schema.get("description"):
        node = dataclasses.replace(node, description=schema["description"])
    if "default" in schema:
        node = dataclasses.replace(node, default=schema["default"])
    return node


def _bound(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


_IDENT_RE = re.compile(r"[^0-9A-Za-z_]")


def build_model(name: str, schema: SchemaNode) -> type[BaseModel]:
    """Compile *schema* into a pydantic model named after *name*.

    A non-object root is wrapped as an empty, permissive model.  Extra keys are
    kept so host-injected context survives validation.  Property names pydantic
    cannot use as attributes (``_id``, ``model_config``, ``my-key``) get a
    generated field name with the property name as alias.
    """
    model_name = _IDENT_RE.sub("_", name) or "Args"
    fields: dict[str, Any] = {}
    if isinstance(schema, ObjectSchema):
        for index, (key, child) in enumerate(schema.fields.items()):
            required = schema.is_required(key)
            annotation = child.annotation(f"{model_name}_{_IDENT_RE.sub('_', key)}")
            if not required and not child.has_default:
                annotation = Optional[annotation]
            if _usable_field_name(key):
                fields[key] = (annotation, child.field_info(required))
            else:
                generated = f"field_{index}"
                while generated in schema.fields or generated in fields:
                    generated += "_"
                fields[generated] = (annotation, child.field_info(required, alias=key))
    return create_model(
        model_name,
        __config__=ConfigDict(extra="allow", populate_by_name=True, protected_namespaces=()),
        __doc__=schema.description,
        **fields,
    )


def _usable_field_name(key: str) -> bool:
    return (
        key.isidentifier()
        and not keyword.iskeyword(key)
        and not key.startswith("_")
        and not key.startswith("model_")
        and not hasattr(BaseModel, key)
    )
