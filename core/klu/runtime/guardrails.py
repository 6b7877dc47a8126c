"""
Memory guardrails checked before a model is loaded.
"""

from enum import Enum
from typing import Callable, Optional

import psutil

from klu.errors import MemoryLimitExceeded
from klu.models.catalog import ModelDescriptor
from klu.settings import RuntimeSettings
from klu.utils.logging import logger


class GuardrailLevel(str, Enum):
    OFF = "Off"
    RELAXED = "Relaxed"
    BALANCED = "Balanced"
    STRICT = "Strict"
    CUSTOM = "Custom"


UTILIZATION_PERCENT = {
    GuardrailLevel.OFF: 100.0,
    GuardrailLevel.RELAXED: 80.0,
    GuardrailLevel.BALANCED: 60.0,
    GuardrailLevel.STRICT: 40.0,
}


def available_memory() -> int:
    """Bytes of RAM currently available to new allocations."""
    return psutil.virtual_memory().available


class MemoryGuard:
    """
    Refuses loads whose catalog size exceeds a share of available RAM.
    The share comes from the guardrails level in the settings.
    """

    def __init__(
        self,
        settings: RuntimeSettings,
        memory_reader: Optional[Callable[[], int]] = None,
    ):
        self.settings = settings
        self.memory_reader = memory_reader or available_memory

    @property
    def level(self) -> GuardrailLevel:
        try:
            return GuardrailLevel(self.settings.config.guardrails_level)
        except ValueError:
            return GuardrailLevel.BALANCED

    def utilization_percent(self) -> float:
        level = self.level
        if level == GuardrailLevel.CUSTOM:
            return float(self.settings.config.custom_memory_utilization)
        return UTILIZATION_PERCENT[level]

    def max_allowed_bytes(self) -> int:
        return int(self.memory_reader() * (self.utilization_percent() / 100.0))

    def check(self, descriptor: ModelDescriptor) -> None:
        """
        Raises:
            MemoryLimitExceeded: If the model is larger than the allowed budget
        """
        if self.level == GuardrailLevel.OFF:
            logger.debug("Guardrails are off, skipping memory check")
            return

        limit = self.max_allowed_bytes()
        logger.debug(
            f"Memory check for {descriptor.id}: needs {descriptor.size_bytes} bytes, "
            f"limit {limit} bytes ({self.level.value})"
        )
        if descriptor.size_bytes > limit:
            raise MemoryLimitExceeded(descriptor.id, descriptor.size_bytes, limit)
