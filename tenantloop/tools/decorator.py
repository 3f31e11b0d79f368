"""
@tool decorator - build a Tool from a typed async function.

The signature becomes a pydantic model (unknown keys forbidden), so the
generation engine's arguments are validated before the body ever runs.
``Annotated[T, "description"]`` adds a description; ``Field(...)``
metadata inside ``Annotated`` adds constraints.

Usage::

    from typing import Annotated, Literal, Optional
    from pydantic import Field
    from tenantloop.tools import tool, ToolContext

    @tool(category="fees")
    async def fees_cancel(
        fee_type: Annotated[Literal["electricity", "water"], "Type of fee to cancel"],
        due_day: Annotated[int, Field(ge=1, le=31), "Due day of the fee"],
        *,
        context: ToolContext,
    ):
        \"\"\"Cancel an active fee reminder by type and due day.\"\"\"
        ...

A tool may not declare a tenant parameter: the tenant always comes from the
bound ToolContext.
"""

import inspect
from typing import Annotated, Any, Callable, Dict, Optional, Tuple, get_args, get_origin, get_type_hints

from pydantic import ConfigDict, Field, create_model

from .models import Tool

# Names no tool may accept; the tenant is never an engine-supplied value.
FORBIDDEN_PARAMETERS = frozenset({"tenant_id", "tenantId", "tenant"})


def _split_annotation(annotation: Any) -> Tuple[Any, Optional[str]]:
    """Return (annotation without string metadata, description)."""
    if get_origin(annotation) is not Annotated:
        return annotation, None
    base, *extras = get_args(annotation)
    description = next((e for e in extras if isinstance(e, str)), None)
    constraints = [e for e in extras if not isinstance(e, str)]
    if constraints:
        return Annotated[(base, *constraints)], description
    return base, description


def _build_args_model(func: Callable, model_name: str):
    sig = inspect.signature(func)
    hints = get_type_hints(func, include_extras=True)

    fields: Dict[str, Any] = {}
    for name, param in sig.parameters.items():
        if name == "context":
            continue
        if name in FORBIDDEN_PARAMETERS:
            raise TypeError(f"Tool '{func.__name__}' may not take a '{name}' parameter")
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise TypeError(f"Tool '{func.__name__}' may not take *args or **kwargs")

        annotation, description = _split_annotation(hints.get(name, str))
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[name] = (annotation, Field(default, description=description))

    return create_model(
        model_name,
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def tool(
    func: Optional[Callable] = None,
    *,
    name: Optional[str] = None,
    category: str = "utility",
) -> Any:
    """Decorator that converts a typed async function into a :class:`Tool`.

    Supports both bare ``@tool`` and parameterised ``@tool(category=...)``.
    """

    def _make_tool(fn: Callable) -> Tool:
        tool_name = name or fn.__name__
        doc = inspect.getdoc(fn) or ""
        description = doc.split("\n")[0].strip() if doc else tool_name
        model_name = "".join(part.title() for part in tool_name.split("_")) + "Args"
        return Tool(
            name=tool_name,
            description=description,
            args_model=_build_args_model(fn, model_name),
            executor=fn,
            category=category,
        )

    if func is not None:
        return _make_tool(func)
    return _make_tool
