"""
Registry of available models per capability.
Read-only lookup over the static catalog.
"""

from types import MappingProxyType
from typing import Mapping, Optional

from klu.errors import ModelNotFound
from klu.models.catalog import (
    DEFAULT_CATALOG,
    DEFAULT_MODELS,
    Capability,
    ModelDescriptor,
)
from klu.utils.logging import logger


class ModelRegistry:
    """
    Answers "what models exist for capability X" and "what is the default".

    Built once by the application startup sequence and shared by the cache,
    the dispatcher and the sessions. Nothing mutates it after construction,
    so concurrent readers need no locking.
    """

    def __init__(
        self,
        catalog: Mapping[Capability, list[ModelDescriptor]] = DEFAULT_CATALOG,
        defaults: Mapping[Capability, str] = DEFAULT_MODELS,
    ):
        tables: dict[Capability, tuple[ModelDescriptor, ...]] = {}
        for capability in Capability:
            models = tuple(catalog.get(capability, ()))
            if not models:
                raise ValueError(f"No models declared for capability '{capability.value}'")

            default_id = defaults.get(capability)
            if default_id not in {m.id for m in models}:
                raise ValueError(
                    f"Default model '{default_id}' is not in the "
                    f"'{capability.value}' catalog"
                )
            tables[capability] = models

        self._tables = MappingProxyType(tables)
        self._defaults = MappingProxyType(dict(defaults))

        total = sum(len(m) for m in tables.values())
        logger.debug(f"Model registry ready: {total} models in {len(tables)} capabilities")

    def capabilities(self) -> list[Capability]:
        return list(self._tables)

    def list_models(self, capability: Capability) -> list[ModelDescriptor]:
        """Models for a capability, in declaration order."""
        return list(self._tables[Capability(capability)])

    def default_model(self, capability: Capability) -> str:
        return self._defaults[Capability(capability)]

    def get(self, capability: Capability, model_id: str) -> ModelDescriptor:
        """
        Look up a descriptor within one capability.

        Raises:
            ModelNotFound: If the id is not in that capability's catalog
        """
        capability = Capability(capability)
        for descriptor in self._tables[capability]:
            if descriptor.id == model_id:
                return descriptor
        raise ModelNotFound(model_id, capability.value)

    def resolve(
        self, capability: Capability, model_id: Optional[str] = None
    ) -> ModelDescriptor:
        """Descriptor for the given id, or the capability default when None."""
        return self.get(capability, model_id or self.default_model(capability))
