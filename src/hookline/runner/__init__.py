"""Agent CLI execution.

This module manages the external analysis agent:
- Subprocess invocation with the instruction document on stdin
- Timeout enforcement
- stdout/stderr capture and exit code handling
- Background dispatch decoupled from request lifetimes
"""

from .agent import AGENT_ARGS, AGENT_COMMAND, AgentLaunchError, AgentResult, AgentRunner
from .executor import AgentDispatcher, ExecutionService

__all__ = [
    "AGENT_ARGS",
    "AGENT_COMMAND",
    "AgentDispatcher",
    "AgentLaunchError",
    "AgentResult",
    "AgentRunner",
    "ExecutionService",
]
