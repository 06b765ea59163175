# voiceturn - Pipeline Package
from .config import AgentState, DialogueConfig, STATE_DISPLAY
from .orchestrator import DialogueOrchestrator
from .run import PipelineRun

__all__ = [
    "AgentState",
    "DialogueConfig",
    "DialogueOrchestrator",
    "PipelineRun",
    "STATE_DISPLAY",
]
