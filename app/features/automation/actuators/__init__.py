"""
Actuator capabilities consumed by the execution pipeline and batch dispatcher.
"""

from .registry import Actuator, ActuatorRegistry
from .webhook import LoggingActuator, WebhookActuator, build_default_registry

__all__ = [
    "Actuator",
    "ActuatorRegistry",
    "LoggingActuator",
    "WebhookActuator",
    "build_default_registry",
]
