from .dsl import target, tool, service, service_up, service_down, set_build_number, steps, builder, build
from .dag import TargetGraph
from .environment import EnvironmentManager
from .model import Target, ManagedService, RunContext, ExecutionPlan, ExternalProcessResult
from .runner import run_target, load_build
from .state import StateStore
from .tools import ToolInvoker

__all__ = [
    "target", "tool", "service", "service_up", "service_down", "set_build_number", "steps", "builder", "build",
    "TargetGraph", "EnvironmentManager", "ToolInvoker", "StateStore",
    "Target", "ManagedService", "RunContext", "ExecutionPlan", "ExternalProcessResult",
    "run_target", "load_build",
]
