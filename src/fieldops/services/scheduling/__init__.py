"""Schedule orchestration exports."""

from .service import ScheduleOrchestrator, build_orchestrator, get_orchestrator

__all__ = ["ScheduleOrchestrator", "build_orchestrator", "get_orchestrator"]
