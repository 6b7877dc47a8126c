"""
Runtime settings persistence.
"""

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from klu.config import (
    DATA_DIR,
    DEFAULT_MAX_TOKENS,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_TEMPERATURE,
    MAX_TOOL_ROUNDS,
)
from klu.utils.logging import logger


@dataclass
class RuntimeConfig:
    """Generation and resource configuration."""

    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_tool_rounds: int = MAX_TOOL_ROUNDS
    cache_models_in_memory: bool = True
    guardrails_level: str = "Balanced"  # Off, Relaxed, Balanced, Strict, Custom
    custom_memory_utilization: int = 50  # percent, used with Custom
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class RuntimeSettings:
    """
    Persistent user preferences consulted by the runtime.

    Stores:
    - Which tools are enabled
    - The selected model per capability
    - Generation, cache and guardrail configuration
    """

    SETTINGS_FILE = "settings.json"

    def __init__(self, data_dir: Optional[Path] = None, persist: bool = True):
        """
        Initialize runtime settings.

        Args:
            data_dir: Directory for settings file (default: ~/.klu)
            persist: Write changes to disk
        """
        self.data_dir = data_dir or DATA_DIR
        self.persist = persist
        self._settings_path = self.data_dir / self.SETTINGS_FILE

        self.enabled_tools: dict[str, bool] = {}
        self.selected_models: dict[str, str] = {}
        self.config = RuntimeConfig()

        if persist:
            self._load()

    # Tools are enabled unless the user switched them off.
    def is_tool_enabled(self, name: str) -> bool:
        return self.enabled_tools.get(name, True)

    def set_tool_enabled(self, name: str, enabled: bool) -> None:
        self.enabled_tools[name] = enabled
        self.save()
        logger.info(f"Tool {name} {'enabled' if enabled else 'disabled'}")

    def selected_model(self, capability: str) -> Optional[str]:
        """The user's model choice for a capability, if any."""
        return self.selected_models.get(str(capability))

    def select_model(self, capability: str, model_id: str) -> None:
        self.selected_models[str(capability)] = model_id
        self.save()

    @property
    def cache_models_in_memory(self) -> bool:
        return self.config.cache_models_in_memory

    def save(self) -> None:
        """Save settings to disk."""
        if not self.persist:
            return

        self.data_dir.mkdir(parents=True, exist_ok=True)

        data = self.to_dict()
        data["version"] = 1

        with open(self._settings_path, "w") as f:
            json.dump(data, f, indent=2)

        logger.debug(f"Saved settings to {self._settings_path}")

    def _load(self) -> None:
        """Load settings from disk."""
        if not self._settings_path.exists():
            logger.info("No existing settings found, using defaults")
            return

        try:
            with open(self._settings_path, "r") as f:
                data = json.load(f)

            self.enabled_tools = dict(data.get("enabled_tools", {}))
            self.selected_models = dict(data.get("selected_models", {}))

            defaults = RuntimeConfig()
            config_data = data.get("config", {})
            self.config = RuntimeConfig(
                **{
                    name: config_data.get(name, getattr(defaults, name))
                    for name in asdict(defaults)
                }
            )

            logger.info(f"Loaded settings from {self._settings_path}")

        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to load settings: {e}")

    def to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return {
            "enabled_tools": dict(self.enabled_tools),
            "selected_models": dict(self.selected_models),
            "config": asdict(self.config),
        }
