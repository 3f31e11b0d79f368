"""Tool Surface data types."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from ..connectors.automation import AutomationConnector
from ..db.gateway import DataGateway
from ..repositories import (
    DocumentRepository,
    FeeCalendarRepository,
    FeeRepository,
    NotificationSettingsRepository,
    PromptRepository,
)
from ..scheduler.service import Scheduler


@dataclass
class ToolServices:
    """Process-wide dependencies shared by every bound tool.

    Built once at start-up and never mutated afterwards.
    """
    gateway: DataGateway
    scheduler: Scheduler
    connector: AutomationConnector
    fees: FeeRepository
    fee_calendar: FeeCalendarRepository
    documents: DocumentRepository
    notifications: NotificationSettingsRepository
    prompts: PromptRepository

    @classmethod
    def build(
        cls,
        gateway: DataGateway,
        scheduler: Scheduler,
        connector: AutomationConnector,
    ) -> "ToolServices":
        return cls(
            gateway=gateway,
            scheduler=scheduler,
            connector=connector,
            fees=FeeRepository(gateway),
            fee_calendar=FeeCalendarRepository(gateway),
            documents=DocumentRepository(gateway),
            notifications=NotificationSettingsRepository(gateway),
            prompts=PromptRepository(gateway),
        )


@dataclass(frozen=True)
class ToolContext:
    """Closure every tool body runs in.

    The tenant and conversation come from the resolved request, never from
    generation-engine arguments.
    """
    tenant_id: str
    conversation_id: str
    principal_id: str
    services: ToolServices
    reply_target: Optional[str] = None
    timezone: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidatedArgs:
    values: Dict[str, Any]


@dataclass(frozen=True)
class ArgsError:
    message: str


ArgsResult = Union[ValidatedArgs, ArgsError]


@dataclass
class Tool:
    """A callable operation exposed to the generation engine.

    Attributes:
        name: Tool function name (used in tool calls).
        description: What this tool does (shown to the engine).
        args_model: Pydantic model validating the arguments.
        executor: ``async def fn(**args, context: ToolContext) -> Any``.
        category: Grouping label for logs.
    """

    name: str
    description: str
    args_model: Type[BaseModel]
    executor: Callable
    category: str = "utility"

    @property
    def parameters(self) -> Dict[str, Any]:
        return _strip_titles(self.args_model.model_json_schema())

    def to_openai_schema(self) -> Dict[str, Any]:
        """Convert to OpenAI function-calling tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate(self, arguments: Any) -> ArgsResult:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return ArgsError(f"Arguments for '{self.name}' must be a JSON object")
        try:
            model = self.args_model.model_validate(arguments)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            return ArgsError(f"Invalid arguments for '{self.name}': {problems}")
        return ValidatedArgs({name: getattr(model, name) for name in type(model).model_fields})


def _strip_titles(schema: Any) -> Any:
    """Drop pydantic's generated ``title`` keys; the engine only needs types."""
    if isinstance(schema, dict):
        return {
            k: _strip_titles(v)
            for k, v in schema.items()
            if not (k == "title" and isinstance(v, str))
        }
    if isinstance(schema, list):
        return [_strip_titles(v) for v in schema]
    return schema
