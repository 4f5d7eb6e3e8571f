"""Resource/action dispatcher.

Every in-process tool is a resource bundle: a table mapping each resource to
the ordered actions it supports, plus one handler per (resource, action).
A single dispatch() function validates the pair against the table and routes
the call, so handler code never re-validates its own arguments.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from typing import Any

from toolhost.context import ToolContext, check_cancelled, with_tool_context
from toolhost.contract import schema_bytes
from toolhost.errors import NO_ORG_SELECTED, ToolError, ToolExecutionError, validation_error
from toolhost.validation import decode_input, input_properties

logger = logging.getLogger(__name__)

# handler(tool_ctx, params) -> output dataclass with to_dict()
Handler = Callable[[ToolContext, Any], Any]


@dataclass(frozen=True)
class ResourceTool:
    """Declaration of an in-process tool.

    Attributes:
        name: Tool name (unique per host).
        title: Short display title.
        description: Human-readable description.
        input_type: Input dataclass; must declare `resource` and `action`.
        actions: Resource name to its ordered valid actions.
        handlers: Resource name to action name to handler.
    """

    name: str
    title: str
    description: str
    input_type: type
    actions: Mapping[str, tuple[str, ...]]
    handlers: Mapping[str, Mapping[str, Handler]]

    def __post_init__(self) -> None:
        names = {f.name for f in fields(self.input_type)}
        if not {"resource", "action"} <= names:
            raise TypeError(f"{self.input_type.__name__} must declare 'resource' and 'action'")

        advertised = {(r, a) for r, acts in self.actions.items() for a in acts}
        handled = {(r, a) for r, table in self.handlers.items() for a in table}
        if advertised != handled:
            missing = sorted(advertised - handled)
            extra = sorted(handled - advertised)
            raise ValueError(
                f"Tool '{self.name}' handler table does not match action table "
                f"(missing: {missing}, unadvertised: {extra})"
            )

    def input_schema(self) -> dict[str, Any]:
        """Build the advertised JSON Schema of the tool's input."""
        properties = input_properties(self.input_type)

        all_actions: list[str] = []
        for acts in self.actions.values():
            all_actions.extend(a for a in acts if a not in all_actions)

        properties["resource"]["enum"] = list(self.actions)
        properties["action"]["enum"] = all_actions

        return {
            "type": "object",
            "properties": properties,
            "required": ["resource", "action"],
        }

    def schema(self) -> bytes:
        return schema_bytes(self.input_schema())


def dispatch(tool: ResourceTool, tool_ctx: ToolContext, payload: Any) -> Any:
    """Validate a payload and route it to the matching handler.

    Args:
        tool: Tool declaration.
        tool_ctx: Session context bound for the duration of the call.
        payload: Raw JSON payload (str, bytes or decoded mapping).

    Returns:
        The handler's typed output.

    Raises:
        ToolError: Validation failures, or any domain error raised by the
            handler (propagated unchanged).
        ToolExecutionError: Any other handler failure. The message names the
            exception type only; the exception itself is chained as __cause__.
    """
    check_cancelled()

    params = decode_input(tool.input_type, payload)
    resource = params.resource
    action = params.action

    actions = tool.actions.get(resource)
    if actions is None:
        raise validation_error(
            f"invalid resource '{resource}', must be: {', '.join(tool.actions)}",
            "resource",
        )
    if action not in actions:
        raise validation_error(
            f"invalid action '{action}' for resource '{resource}', "
            f"must be: {', '.join(actions)}",
            "action",
        )

    handler = tool.handlers[resource][action]
    logger.debug("Dispatching %s %s.%s", tool.name, resource, action)

    with with_tool_context(tool_ctx):
        try:
            return handler(tool_ctx, params)
        except ToolError as err:
            if err is NO_ORG_SELECTED:
                err.__context__ = None
            raise
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.exception("Handler %s %s.%s failed", tool.name, resource, action)
            raise ToolExecutionError(
                f"{tool.name} {resource}.{action} failed ({type(e).__name__})"
            ) from e
