"""Tool system for the orchestration pipeline.

Example:
    from codepair.ai.orchestration.tools import (
        ToolDefinition,
        ToolExecutor,
        ToolParameter,
        ToolRegistry,
    )

    registry = ToolRegistry()
    registry.register_function(
        ToolDefinition(
            name="greet",
            description="Greet someone",
            parameters=(ToolParameter("name"),),
        ),
        lambda args: f"Hello, {args.get('name', 'World')}!",
    )
    executor = ToolExecutor(registry)
"""

from .types import (
    AsyncToolHandler,
    SimpleTool,
    Tool,
    ToolDefinition,
    ToolExpansion,
    ToolHandler,
    ToolOutput,
    ToolParameter,
    ToolReturn,
)

from .registry import (
    DuplicateToolError,
    ToolNotFoundError,
    ToolRegistry,
)

from .executor import (
    ExecutorConfig,
    ToolExecutor,
)

from .edit_tools import (
    EditProposals,
    StrReplaceEditorTool,
    register_edit_tools,
)

__all__ = [
    # types.py
    "AsyncToolHandler",
    "SimpleTool",
    "Tool",
    "ToolDefinition",
    "ToolExpansion",
    "ToolHandler",
    "ToolOutput",
    "ToolParameter",
    "ToolReturn",
    # registry.py
    "DuplicateToolError",
    "ToolNotFoundError",
    "ToolRegistry",
    # executor.py
    "ExecutorConfig",
    "ToolExecutor",
    # edit_tools.py
    "EditProposals",
    "StrReplaceEditorTool",
    "register_edit_tools",
]
