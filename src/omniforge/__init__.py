"""
OmniForge - phase/script orchestration for project bootstrapping.

Runs a catalog of installer scripts grouped into ordered phases, records
each success in a persistent state store so interrupted runs resume where
they stopped, enforces per-phase command prerequisites, and reports the
outcome with either fail-fast or deferred-error semantics.

Example usage:
    from omniforge import PhaseOrchestrator, ExecutionPolicy

    orchestrator = PhaseOrchestrator.from_config()
    run = orchestrator.execute_all(policy=ExecutionPolicy.CONTINUE)
    print(orchestrator.recap(run))
"""

__version__ = "0.1.0"
__all__ = [
    "PhaseOrchestrator",
    "PhaseRegistry",
    "ExecutionStateStore",
    "ScriptExecutor",
    "DependencyChecker",
    "ExecutionPolicy",
    "ExecutionRun",
    "__version__",
]


# Lazy imports to avoid loading heavy dependencies at import time
def __getattr__(name: str):
    if name == "PhaseOrchestrator":
        from omniforge.orchestrator import PhaseOrchestrator
        return PhaseOrchestrator
    if name == "PhaseRegistry":
        from omniforge.registry import PhaseRegistry
        return PhaseRegistry
    if name == "ExecutionStateStore":
        from omniforge.state import ExecutionStateStore
        return ExecutionStateStore
    if name == "ScriptExecutor":
        from omniforge.executor import ScriptExecutor
        return ScriptExecutor
    if name == "DependencyChecker":
        from omniforge.deps import DependencyChecker
        return DependencyChecker
    if name == "ExecutionPolicy":
        from omniforge.reporter import ExecutionPolicy
        return ExecutionPolicy
    if name == "ExecutionRun":
        from omniforge.reporter import ExecutionRun
        return ExecutionRun
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
