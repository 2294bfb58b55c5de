"""Tool registry — maps tool names (and aliases) to handlers with schema validation.

The ``Registry`` is a plain class (not a singleton) so tests can create
fresh instances.  ``ToolExecutor`` owns one and registers the built-in
catalog on construction; extra tools can be registered afterwards.

Dispatch never raises: unknown names, invalid arguments and handler
exceptions all come back as ``ToolResult.fail``.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from pydantic import BaseModel, ValidationError

from cognitive_ide.contracts import ToolResult
from cognitive_ide.errors import IDEError, UnknownToolError

logger = logging.getLogger(__name__)


@dataclass
class _ToolEntry:
    """Internal record for a registered tool."""

    name: str
    handler: Callable
    request_model: type[BaseModel]
    description: str
    aliases: tuple[str, ...] = ()
    definition: dict[str, Any] = field(default_factory=dict)


class Registry:
    """Tool registry with case-insensitive, alias-aware dispatch.

    Usage::

        reg = Registry()
        reg.register("read_file", handler_fn, ReadFileRequest, "Read a file", aliases=("read",))
        result = await reg.dispatch("READ", {"path": "src/app.py"})
    """

    def __init__(self) -> None:
        self._tools: dict[str, _ToolEntry] = {}
        self._names: dict[str, str] = {}  # lowered name or alias → canonical

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        handler: Callable,
        request_model: type[BaseModel],
        description: str,
        aliases: Iterable[str] = (),
    ) -> None:
        """Register a tool with its handler and request schema.

        Raises ``ValueError`` if the name or any alias is already taken.
        """
        alias_tuple = tuple(aliases)
        for candidate in (name, *alias_tuple):
            if candidate.lower() in self._names:
                raise ValueError(f"Tool '{candidate}' is already registered")

        self._tools[name] = _ToolEntry(
            name=name,
            handler=handler,
            request_model=request_model,
            description=description,
            aliases=alias_tuple,
            definition=_build_tool_definition(name, description, request_model),
        )
        for candidate in (name, *alias_tuple):
            self._names[candidate.lower()] = name

    def resolve(self, name: str) -> str | None:
        """Canonical tool name for *name* or one of its aliases."""
        return self._names.get(name.strip().lower())

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, name: str, params: dict[str, Any]) -> ToolResult:
        """Validate *params*, call the handler, and stamp the duration.

        * Unknown tool name → ``ToolResult.fail("Unknown tool: ...")``
        * Invalid params → ``ToolResult.fail`` with the first validation message
        * Handler exception → ``ToolResult.fail`` with the exception message
        """
        start = time.perf_counter()

        canonical = self.resolve(name)
        if canonical is None:
            exc = UnknownToolError(name, self.tool_names())
            return ToolResult.fail(str(exc), duration_ms=_elapsed_ms(start))
        entry = self._tools[canonical]

        # Validate input ------------------------------------------------
        try:
            validated = entry.request_model.model_validate(params or {})
        except ValidationError as exc:
            return ToolResult.fail(
                _validation_message(canonical, exc),
                duration_ms=_elapsed_ms(start),
            )

        # Call handler ---------------------------------------------------
        try:
            if inspect.iscoroutinefunction(entry.handler):
                result = await entry.handler(validated)
            else:
                result = entry.handler(validated)
        except IDEError as exc:
            logger.debug("[registry] tool=%s failed %s", canonical, exc.to_dict())
            return ToolResult.fail(str(exc), duration_ms=_elapsed_ms(start))
        except Exception as exc:
            logger.warning("[executor:error] tool=%s unexpected %s: %s", canonical, type(exc).__name__, exc)
            return ToolResult.fail(str(exc) or type(exc).__name__, duration_ms=_elapsed_ms(start))

        # Wrap result ----------------------------------------------------
        elapsed = _elapsed_ms(start)
        if isinstance(result, ToolResult):
            return result.model_copy(update={"duration_ms": elapsed})
        if isinstance(result, dict):
            return ToolResult.ok(result, duration_ms=elapsed)
        return ToolResult.ok({"result": str(result)}, formatted=str(result), duration_ms=elapsed)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def list_tools(self) -> list[dict[str, Any]]:
        """Return JSON-schema tool definitions for all registered tools."""
        return [entry.definition for entry in self._tools.values()]

    def has_tool(self, name: str) -> bool:
        return self.resolve(name) is not None

    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def all_names(self) -> list[str]:
        """Every dispatchable name, aliases included."""
        names: list[str] = []
        for entry in self._tools.values():
            names.append(entry.name)
            names.extend(entry.aliases)
        return names


# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _validation_message(name: str, exc: ValidationError) -> str:
    """Human-readable message for the first validation failure.

    Custom ``ValueError`` messages from field validators ("Query is
    required") are returned as-is; type errors name the field.
    """
    errors = exc.errors()
    if not errors:
        return f"Invalid params for '{name}'"
    first = errors[0]
    if first.get("type") == "value_error":
        return first["msg"].removeprefix("Value error, ")
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid params for '{name}': {loc}: {first['msg']}" if loc else f"Invalid params for '{name}': {first['msg']}"


def _build_tool_definition(
    name: str, description: str, request_model: type[BaseModel]
) -> dict[str, Any]:
    """Build a function-calling tool definition from a Pydantic model."""
    schema = request_model.model_json_schema()
    properties = schema.get("properties", {})
    required = schema.get("required", [])

    clean_props: dict[str, Any] = {}
    for prop_name, prop_schema in properties.items():
        cleaned = {
            k: v
            for k, v in prop_schema.items()
            if k in ("type", "description", "default", "enum", "items")
        }
        if "type" not in cleaned:
            cleaned["type"] = "string"
        clean_props[prop_name] = cleaned

    return {
        "name": name,
        "description": description,
        "input_schema": {
            "type": "object",
            "properties": clean_props,
            "required": required,
        },
    }


__all__ = ["Registry"]
