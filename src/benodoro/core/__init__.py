"""App process components."""

from benodoro.core.config import Config, get_config
from benodoro.core.orchestrator import Orchestrator, create_manager

__all__ = ["Config", "get_config", "Orchestrator", "create_manager"]
