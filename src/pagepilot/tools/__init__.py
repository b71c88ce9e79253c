"""
Tool registry for PagePilot.

This module provides an in-process registry that plays the part of one page's tool surface: tools
are plain (sync or async) functions registered under a name, and each registration is described to
the model with a JSON schema derived from the function signature.

It also defines the two built-in control tools, ``complete`` and ``ask_user``, which every planner
request carries in addition to whatever the page exposes.
"""

import inspect
import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    TypedDict,
    get_type_hints,
)

logger = logging.getLogger(__name__)

COMPLETE_TOOL_NAME = "complete"
ASK_USER_TOOL_NAME = "ask_user"


class ToolSchema(TypedDict):
    """
    Description of a tool as reported by a page: name, description and JSON input schema.
    """

    name: str
    description: str
    inputSchema: Mapping[str, Any]


BUILTIN_TOOLS: List[ToolSchema] = [
    {
        "name": COMPLETE_TOOL_NAME,
        "description": (
            "Call this tool when the user's goal has been fully achieved. "
            "Provide a short summary of what was accomplished."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "summary": {
                    "type": "string",
                    "description": "A short summary of what was accomplished.",
                },
            },
            "required": ["summary"],
        },
    },
    {
        "name": ASK_USER_TOOL_NAME,
        "description": (
            "Call this tool when you need additional information from the user that was not "
            "provided in the goal (e.g., name, phone number, email, preferences). "
            "Ask a clear, specific question."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "question": {"type": "string", "description": "The question to ask the user."},
            },
            "required": ["question"],
        },
    },
]
"""Control tools intercepted by the agent loop; never routed to a page."""

BUILTIN_TOOL_NAMES = frozenset(t["name"] for t in BUILTIN_TOOLS)

_JSON_TYPES: Dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _json_type(annotation: Any) -> str:
    origin = getattr(annotation, "__origin__", None)
    return _JSON_TYPES.get(annotation) or _JSON_TYPES.get(origin) or "string"


def schema_from_signature(func: Callable) -> Dict[str, Any]:
    """Derive a JSON-schema ``object`` description from *func*'s signature."""
    sig = inspect.signature(func)
    type_hints = get_type_hints(func)
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for param_name, param in sig.parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        properties[param_name] = {"type": _json_type(type_hints.get(param_name, str))}
        if param.default is inspect.Parameter.empty:
            required.append(param_name)
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


class ToolRegistry:
    """Named tool functions for one origin."""

    def __init__(self) -> None:
        self._tools: Dict[str, Callable] = {}
        self._schemas: Dict[str, ToolSchema] = {}

    def register_tool(
        self,
        name: str,
        description: str | None = None,
        input_schema: Mapping[str, Any] | None = None,
    ) -> Callable:
        """
        Register a tool function with the given name.

        The function is registered as a decorator, so it can be used like this:
            @registry.register_tool("add-to-cart")
            def add_to_cart(product_id: str, quantity: int = 1):
                ...

        Parameters
        ----------
        name: str
            The name of the tool.  This must be unique within the registry.
        description: str, optional
            Model-facing description; defaults to the function docstring.
        input_schema: Mapping, optional
            JSON schema for the arguments; derived from the signature when omitted.

        Raises
        ------
        ValueError
            If a function with the same name is already registered.
        """
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        logger.debug("Registering tool '%s'", name)

        def wrapper(fn: Callable) -> Callable:
            self._tools[name] = fn
            self._schemas[name] = {
                "name": name,
                "description": description or inspect.getdoc(fn) or "",
                "inputSchema": dict(input_schema or schema_from_signature(fn)),
            }
            return fn

        return wrapper

    def unregister_tool(self, name: str) -> None:
        """Remove *name*; unknown names are ignored."""
        self._tools.pop(name, None)
        self._schemas.pop(name, None)

    def clear(self) -> None:
        self._tools.clear()
        self._schemas.clear()

    def get(self, name: str) -> Callable | None:
        return self._tools.get(name)

    def get_tool_schemas(self) -> List[ToolSchema]:
        """Describe every registered tool, in registration order."""
        return list(self._schemas.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
