# voiceturn - Voice Turn Orchestrator
from .pipeline import AgentState, DialogueConfig, DialogueOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AgentState",
    "DialogueConfig",
    "DialogueOrchestrator",
]
