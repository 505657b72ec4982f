"""
Tool Registry
Holds the tools the model may call: definition, argument schema, executor and
policy (category, approval, parallel safety, enabled flag).

The tool map is copy-on-write. Readers grab the current map without locking
and always see complete RegisteredTool values; writers serialize on a lock and
publish a new map.
"""

import re
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from jsonschema import Draft7Validator
from loguru import logger

from toolstream.core.tool_definitions import ToolConfig, get_tool_by_name, get_tool_config
from toolstream.core.types import (
    ApprovalType,
    ToolCategory,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolExecutorFn,
    ValidationResult,
)

_REQUIRED_FIELD_REGEX = re.compile(r"^'(?P<field>[^']+)' is a required property")


@dataclass(frozen=True)
class RegisteredTool:
    """A registered tool. Immutable: toggling produces a new value."""
    name: str
    definition: Dict[str, Any]
    executor: ToolExecutorFn
    category: ToolCategory = ToolCategory.READ
    approval_type: ApprovalType = ApprovalType.NONE
    parallel: bool = False
    enabled: bool = True
    validator: Optional[Draft7Validator] = field(default=None, compare=False, repr=False)

    @property
    def schema(self) -> Dict[str, Any]:
        return self.definition["function"].get("parameters") or {"type": "object"}


class ToolRegistry:
    """Registry of executable tools."""

    def __init__(self):
        self._tools: Dict[str, RegisteredTool] = {}
        self._write_lock = threading.Lock()
        self._initialized = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def register(
        self,
        name: str,
        executor: ToolExecutorFn,
        override: bool = False,
        definition: Optional[Dict[str, Any]] = None,
        config: Optional[ToolConfig] = None
    ) -> bool:
        """
        Register one tool.

        The definition and policy come from the built-in tool tables unless
        given explicitly.

        Returns:
            False if the name is taken and override is off, or if no
            definition is known for the name
        """
        definition = definition or get_tool_by_name(name)
        if definition is None:
            logger.warning(f"No definition for tool '{name}', not registered")
            return False

        config = config or get_tool_config(name)
        schema = definition["function"].get("parameters") or {"type": "object"}
        tool = RegisteredTool(
            name=name,
            definition=definition,
            executor=executor,
            category=config.category if config else ToolCategory.READ,
            approval_type=config.approval_type if config else ApprovalType.NONE,
            parallel=config.parallel if config else False,
            validator=Draft7Validator(schema),
        )

        with self._write_lock:
            if name in self._tools and not override:
                logger.warning(f"Tool '{name}' is already registered")
                return False
            tools = dict(self._tools)
            tools[name] = tool
            self._tools = tools

        logger.debug(f"Registered tool {name} ({tool.category.value}, approval={tool.approval_type.value})")
        return True

    def register_all(self, executors: Mapping[str, ToolExecutorFn]) -> None:
        """Register many tools at once, replacing existing ones."""
        for name, executor in executors.items():
            self.register(name, executor, override=True)
        self._initialized = True
        logger.info(f"Tool registry initialized with {len(self._tools)} tools")

    def set_enabled(self, name: str, enabled: bool) -> bool:
        with self._write_lock:
            tool = self._tools.get(name)
            if tool is None:
                return False
            tools = dict(self._tools)
            tools[name] = replace(tool, enabled=enabled)
            self._tools = tools
        logger.debug(f"Tool {name} {'enabled' if enabled else 'disabled'}")
        return True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_all(self, include_disabled: bool = False) -> List[RegisteredTool]:
        """Enabled tools (or all of them), in registration order."""
        return [tool for tool in self._tools.values() if include_disabled or tool.enabled]

    def get_definitions(self) -> List[Dict[str, Any]]:
        """Function-calling definitions of the enabled tools."""
        return [tool.definition for tool in self.get_all()]

    def get_approval_type(self, name: str) -> ApprovalType:
        tool = self._tools.get(name)
        return tool.approval_type if tool else ApprovalType.NONE

    def get_category(self, name: str) -> ToolCategory:
        tool = self._tools.get(name)
        return tool.category if tool else ToolCategory.READ

    def is_parallel_safe(self, name: str) -> bool:
        tool = self._tools.get(name)
        return bool(tool and tool.parallel)

    def is_initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Validation and execution
    # ------------------------------------------------------------------
    def validate(self, name: str, args: Any) -> ValidationResult:
        tool = self._tools.get(name)
        if tool is None:
            return ValidationResult.fail(f"Unknown tool: {name}")
        return self._validate(tool, args)

    @staticmethod
    def _validate(tool: RegisteredTool, args: Any) -> ValidationResult:
        errors = sorted(tool.validator.iter_errors(args), key=lambda e: [str(p) for p in e.path])
        if not errors:
            return ValidationResult.ok(dict(args))

        issues = []
        for error in errors:
            if error.validator == "required":
                match = _REQUIRED_FIELD_REGEX.match(error.message)
                field_name = match.group("field") if match else "arguments"
                issues.append(f"{field_name}: Required")
            else:
                field_name = ".".join(str(p) for p in error.path) or "arguments"
                issues.append(f"{field_name}: {error.message}")
        return ValidationResult.fail("; ".join(issues))

    def execute(
        self,
        name: str,
        args: Dict[str, Any],
        context: Optional[ToolExecutionContext] = None
    ) -> ToolExecutionResult:
        """
        Validate and run a tool. Never raises: every failure comes back as a
        failed ToolExecutionResult.
        """
        # One snapshot for the whole call
        tool = self._tools.get(name)
        if tool is None:
            return ToolExecutionResult.fail(f"Unknown tool: {name}")
        if not tool.enabled:
            return ToolExecutionResult.fail(f'Tool "{name}" is disabled')

        validation = self._validate(tool, args)
        if not validation.success:
            return ToolExecutionResult.fail(f"Validation failed: {validation.error}")

        try:
            return tool.executor(validation.data, context or ToolExecutionContext())
        except Exception as exc:
            logger.error(f"Tool {name} raised: {exc}")
            return ToolExecutionResult.fail(f"Execution error: {exc}")


# Process-wide registry
tool_registry = ToolRegistry()
