from flow_compiler.runtime.simulator import ExecutionSimulator, OnUpdate

__all__ = [
    "ExecutionSimulator",
    "OnUpdate",
]
