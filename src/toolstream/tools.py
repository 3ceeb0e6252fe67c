import inspect
import json
import re
from typing import Any, Callable, get_origin

from toolstream.capability import ToolCapability

_TYPE_MAPPING = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    set: "array",
    dict: "object",
    type(None): "null",
}


def _json_type(annotation) -> str:
    if annotation is inspect.Parameter.empty:
        return "string"
    return _TYPE_MAPPING.get(get_origin(annotation) or annotation, "string")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Pull ``name: description`` lines from a Google-style ``Args:`` block."""
    doc = inspect.getdoc(func) or ""
    descriptions: dict[str, str] = {}
    in_args = False
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            continue
        if not in_args:
            continue
        if not stripped:
            continue
        if not line.startswith((" ", "\t")):
            break
        match = re.match(r"^(\w+)\s*(?:\([^)]*\))?\s*:\s*(.+)$", stripped)
        if match:
            descriptions[match.group(1)] = match.group(2)
    return descriptions


def _build_parameters_schema(func: Callable) -> tuple[dict, list[str]]:
    signature = inspect.signature(func)
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for param_name, param in signature.parameters.items():
        properties[param_name] = {
            "type": _json_type(param.annotation),
            "description": descriptions.get(param_name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    schema = {
        "type": "object",
        "properties": properties,
        "required": required,
    }
    return schema, required


def _summary_line(func: Callable) -> str:
    doc = inspect.getdoc(func) or ""
    return doc.split("\n\n", 1)[0].strip()


class FunctionTool(ToolCapability):
    """A capability backed by a plain (sync or async) function.

    The parameter schema is derived from the function signature and the
    description from its docstring.  Non-string return values are
    JSON-encoded.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        *,
        name: str | None = None,
        display_name: str = "",
        icon: str = "wrench",
        default_enabled: bool = True,
        summary: str | Callable[[dict], str] | None = None,
    ):
        self.func = func
        self.name = name or func.__name__
        self.display_name = display_name or self.name.replace("_", " ").title()
        self.description = _summary_line(func)
        self.icon = icon
        self.default_enabled = default_enabled
        self.parameters, _ = _build_parameters_schema(func)
        self._summary = summary

    def summarize(self, arguments: dict[str, Any]) -> str:
        if callable(self._summary):
            return self._summary(arguments)
        if self._summary is not None:
            return self._summary
        return super().summarize(arguments)

    async def execute(self, arguments: dict[str, Any]) -> str:
        result = self.func(**arguments)
        if inspect.isawaitable(result):
            result = await result
        return result if isinstance(result, str) else json.dumps(result)

    def __call__(self, *args, **kwargs):
        return self.func(*args, **kwargs)


def tool(
    func: Callable | None = None,
    **options,
):
    """Turn a function into a :class:`FunctionTool`.

    Usable bare (``@tool``) or with options
    (``@tool(display_name="Fruit", icon="leaf")``).
    """
    if func is None:
        return lambda f: FunctionTool(f, **options)
    return FunctionTool(func, **options)
