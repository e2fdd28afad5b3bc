"""
Action Registry for the Automation Engine.

The registry maps a node type string to an executable capability. Each
action declares a pydantic model for its parameters, so automations that
reference an unknown action or carry bad parameters are rejected when
they are loaded instead of half-way through a run.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Type
from dataclasses import dataclass, field
from copy import deepcopy
import asyncio
import functools
import logging

from pydantic import BaseModel, ValidationError

from autoflow.engine.errors import ActionError


logger = logging.getLogger(__name__)


@dataclass
class ActionSpec:
    """
    A registered action.

    Attributes:
        name: Unique identifier (node type) for the action
        handler: ``handler(params, context) -> dict | None``, sync or async
        description: Human-readable description
        params_model: Pydantic model validating the node params
        aliases: Alternative names resolving to this action
    """
    name: str
    handler: Callable
    description: str = ""
    params_model: Optional[Type[BaseModel]] = None
    aliases: List[str] = field(default_factory=list)

    @property
    def is_async(self) -> bool:
        return asyncio.iscoroutinefunction(self.handler)

    def parse_params(self, params: Dict[str, Any]) -> Any:
        """Validate params against the action's model."""
        if self.params_model is None:
            return dict(params)
        try:
            return self.params_model.model_validate(params)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}"
                for err in e.errors()
            )
            raise ActionError.invalid_params(
                f"Invalid params for action '{self.name}': {details}"
            ) from e

    def parameters(self) -> Dict[str, str]:
        if self.params_model is None:
            return {}
        return {
            name: getattr(info.annotation, "__name__", str(info.annotation))
            for name, info in self.params_model.model_fields.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize action metadata."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters(),
            "aliases": list(self.aliases),
        }


class ActionRegistry:
    """
    Dispatch table from action type to capability.

    Usage:
        registry = ActionRegistry()

        @registry.register("tag", params_model=TagParams)
        async def tag(params: TagParams, context: dict) -> dict:
            return {"tag": params.tag}

        output = await registry.execute("tag", {"tag": "vip"}, {"subscriberId": "s1"})
    """

    def __init__(self):
        self._actions: Dict[str, ActionSpec] = {}
        self._aliases: Dict[str, str] = {}

    def register(
        self,
        name: Optional[str] = None,
        params_model: Optional[Type[BaseModel]] = None,
        description: str = "",
        aliases: Iterable[str] = (),
    ) -> Callable:
        """
        Decorator to register a function as an action.

        Args:
            name: Action name (defaults to function name)
            params_model: Pydantic model for the node params
            description: Action description (defaults to docstring)
            aliases: Alternative names

        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            self.add(func, name, params_model, description, aliases)
            return func

        return decorator

    def add(
        self,
        func: Callable,
        name: Optional[str] = None,
        params_model: Optional[Type[BaseModel]] = None,
        description: str = "",
        aliases: Iterable[str] = (),
    ) -> ActionSpec:
        """Directly add a function as an action (non-decorator version)."""
        action_name = (name or func.__name__).lower()
        if action_name in self._actions or action_name in self._aliases:
            raise ValueError(f"Action '{action_name}' is already registered")

        spec = ActionSpec(
            name=action_name,
            handler=func,
            description=(description or func.__doc__ or "").strip(),
            params_model=params_model,
            aliases=[a.lower() for a in aliases],
        )
        self._actions[action_name] = spec
        for alias in spec.aliases:
            self._aliases[alias] = action_name

        logger.debug(f"Registered action: {action_name}")
        return spec

    def get(self, name: Optional[str]) -> Optional[ActionSpec]:
        """Get an action by name or alias."""
        if not name:
            return None
        key = name.lower()
        return self._actions.get(self._aliases.get(key, key))

    def validate_params(self, name: Optional[str], params: Dict[str, Any]) -> List[str]:
        """
        Check that an action exists and accepts the given params.

        Returns:
            List of validation errors (empty if valid)
        """
        spec = self.get(name)
        if spec is None:
            return [f"Action '{name}' is not registered"]
        try:
            spec.parse_params(params)
        except ActionError as e:
            return [e.message]
        return []

    async def execute(
        self,
        name: str,
        params: Dict[str, Any],
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Execute an action.

        The handler gets a copy of the context; it changes the run only
        through the mapping it returns.

        Raises:
            ActionError: On any failure; unexpected exceptions are
                reported as transient
        """
        spec = self.get(name)
        if spec is None:
            raise ActionError.invalid_params(f"Action '{name}' is not registered")

        parsed = spec.parse_params(params)
        context_copy = deepcopy(context)

        try:
            if spec.is_async:
                result = await spec.handler(parsed, context_copy)
            else:
                # Run sync handler in executor to not block
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    None,
                    functools.partial(spec.handler, parsed, context_copy),
                )
        except ActionError:
            raise
        except Exception as e:
            raise ActionError.transient(
                f"Action '{spec.name}' raised {type(e).__name__}: {e}"
            ) from e

        if result is None:
            return {}
        if not isinstance(result, dict):
            raise ActionError.invalid_params(
                f"Action '{spec.name}' must return a dict or None, "
                f"got {type(result).__name__}"
            )
        return result

    def remove(self, name: str) -> bool:
        """Remove an action and its aliases."""
        spec = self.get(name)
        if spec is None:
            return False
        del self._actions[spec.name]
        for alias in spec.aliases:
            self._aliases.pop(alias, None)
        return True

    def list_actions(self) -> List[Dict[str, Any]]:
        """List all registered actions with their metadata."""
        return [spec.to_dict() for spec in self._actions.values()]

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self):
        return iter(self._actions.values())
