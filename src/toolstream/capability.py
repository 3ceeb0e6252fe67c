from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PydanticUserError,
    ValidationError,
    create_model,
)

from toolstream.errors import ToolArgumentError

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
}


def _json_schema_type_to_python(schema: dict[str, Any]) -> Any:
    json_type = schema.get("type", "string")
    if isinstance(json_type, list):
        types = [_JSON_TYPES.get(t, Any) for t in json_type if t != "null"]
        if not types:
            return Any
        python_type = types[0]
        for t in types[1:]:
            python_type = python_type | t
        return python_type | None if "null" in json_type else python_type
    return _JSON_TYPES.get(json_type, Any)


def json_schema_to_model(name: str, schema: dict[str, Any]) -> type[BaseModel]:
    """Build a pydantic model that validates arguments for *schema*.

    Only the top-level ``properties``/``required`` keywords and the
    primitive ``type`` of each property are enforced.  Extra keys are
    allowed so providers can send fields the schema does not mention.
    Fields are positional and carry the property name as their alias,
    so names like ``_id`` or ``model_config`` are accepted.
    """
    properties = schema.get("properties", {}) or {}
    required = set(schema.get("required", []) or [])

    field_definitions: dict[str, Any] = {}
    for i, (prop_name, prop_schema) in enumerate(properties.items()):
        prop_type = _json_schema_type_to_python(prop_schema or {})
        prop_desc = (prop_schema or {}).get("description", "")
        if prop_name in required:
            field_definitions[f"field_{i}"] = (
                prop_type, Field(alias=prop_name, description=prop_desc),
            )
        else:
            field_definitions[f"field_{i}"] = (
                prop_type if prop_type is Any else prop_type | None,
                Field(default=None, alias=prop_name, description=prop_desc),
            )

    return create_model(
        f"{name}_arguments",
        __config__=ConfigDict(extra="allow"),
        **field_definitions,
    )


class ToolCapability(ABC):
    """A pluggable tool the model can ask the session to run.

    Subclasses describe themselves (name, description, JSON schema for
    their parameters) and implement :meth:`execute`.  The session holds a
    capability only for its own lifetime; whatever a tool mutates is the
    tool's own business.

    Example::

        class Weather(ToolCapability):
            name = "weather"
            description = "Current weather for a city"
            parameters = {
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            }

            async def execute(self, arguments):
                return await lookup(arguments["city"])
    """

    name: str = ""
    display_name: str = ""
    description: str = ""
    icon: str = "wrench"
    default_enabled: bool = True
    parameters: dict[str, Any] = {"type": "object", "properties": {}}

    _arguments_model: type[BaseModel] | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def definition(self) -> dict:
        """Return an OpenAI-compatible function tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_arguments(self, arguments: Any) -> dict[str, Any]:
        """Check decoded JSON arguments against :attr:`parameters`.

        Validation is strict: ``"2"`` or ``2.0`` is not an ``integer``.
        Returns the arguments unchanged (absent optional keys are not
        filled in).

        Raises:
            ToolArgumentError: If the arguments are not an object or do
                not satisfy the schema.
        """
        if not isinstance(arguments, dict):
            raise ToolArgumentError(
                f"arguments must be a JSON object, got {type(arguments).__name__}",
                tool_name=self.name,
            )
        if self._arguments_model is None:
            try:
                self._arguments_model = json_schema_to_model(self.name, self.parameters)
            except PydanticUserError as e:
                raise ToolArgumentError(
                    f"unusable parameter schema: {e}", tool_name=self.name,
                ) from e
        try:
            self._arguments_model.model_validate(arguments, strict=True)
        except ValidationError as e:
            raise ToolArgumentError(str(e), tool_name=self.name) from e
        return arguments

    def summarize(self, arguments: dict[str, Any]) -> str:
        """Short human-readable description of a call, for UIs."""
        return self.label

    def bind(self, agent_id: str | None) -> ToolCapability:
        """Return the capability to use on behalf of *agent_id*.

        Agent-scoped tools override this; most tools return ``self``.
        """
        return self

    @abstractmethod
    async def execute(self, arguments: dict[str, Any]) -> str:
        """Run the tool and return its textual answer for the model."""
        ...
