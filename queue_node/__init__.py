"""Discrete-event simulation of a single queueing node."""

from queue_node.engine import SimulationEngine
from queue_node.settings import ConfigError, SimulationConfig
from queue_node.state import OwnershipError

__all__ = ["SimulationEngine", "SimulationConfig", "ConfigError", "OwnershipError"]
