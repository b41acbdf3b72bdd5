from tutor_core.agents.orchestrator import Orchestrator, build_default_orchestrator

__all__ = ["Orchestrator", "build_default_orchestrator"]
