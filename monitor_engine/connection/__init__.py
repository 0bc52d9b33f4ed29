from .orchestrator import ConnectionOrchestrator

__all__ = ["ConnectionOrchestrator"]
