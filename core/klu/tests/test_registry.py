import pytest

from klu.errors import ModelNotFound
from klu.models.catalog import (
    DEFAULT_CATALOG,
    DEFAULT_MODELS,
    Backend,
    Capability,
    DownloadLocators,
    ModelDescriptor,
)
from klu.models.registry import ModelRegistry


class TestModelRegistry:

    @pytest.fixture
    def registry(self):
        return ModelRegistry()

    def test_default_is_listed_for_every_capability(self, registry):
        for capability in Capability:
            ids = [m.id for m in registry.list_models(capability)]
            assert ids
            assert registry.default_model(capability) in ids

    def test_catalog_sizes_and_defaults(self, registry):
        assert len(registry.list_models(Capability.CORE)) == 14
        assert len(registry.list_models(Capability.REASONING)) == 6
        assert len(registry.list_models(Capability.VISION)) == 6
        assert len(registry.list_models(Capability.AUDIO)) == 1
        assert len(registry.list_models(Capability.EMBEDDING)) == 10
        assert registry.default_model(Capability.CORE) == "mistral-small-24b-instruct-2501-4bit"
        assert registry.default_model(Capability.VISION) == "gemma-3-12b-it-4bit"

    def test_list_preserves_declaration_order(self, registry):
        models = registry.list_models(Capability.CORE)
        assert models[0].id == "Llama-3.2-1B-Instruct-4bit"
        assert models[-1].id == "watt-tool-8B"

    def test_get_unknown_raises(self, registry):
        with pytest.raises(ModelNotFound):
            registry.get(Capability.VISION, "mistral-small-24b-instruct-2501-4bit")

    def test_resolve_falls_back_to_default(self, registry):
        assert registry.resolve(Capability.AUDIO).id == "openai_whisper-large-v3-v20240930_turbo"
        assert registry.resolve(Capability.CORE, "phi-4-4bit").id == "phi-4-4bit"

    def test_size_bytes_from_gigabytes(self, registry):
        descriptor = registry.get(Capability.CORE, "Llama-3.3-70B-Instruct-4bit")
        assert descriptor.size_bytes == int(39.7 * 1024**3)

    def test_rejects_default_missing_from_list(self):
        defaults = dict(DEFAULT_MODELS)
        defaults[Capability.SPEECH] = "not-a-speech-model"
        with pytest.raises(ValueError):
            ModelRegistry(DEFAULT_CATALOG, defaults)

    def test_rejects_empty_capability(self):
        catalog = dict(DEFAULT_CATALOG)
        catalog[Capability.AUDIO] = []
        with pytest.raises(ValueError):
            ModelRegistry(catalog, DEFAULT_MODELS)


def test_descriptor_equality_uses_id_only():
    a = ModelDescriptor(
        id="same", display_name="A", provider="X", size_bytes=1,
        download_locators=DownloadLocators(primary="org/a"),
    )
    b = ModelDescriptor(
        id="same", display_name="B", provider="Y", size_bytes=2,
        download_locators=DownloadLocators(primary="org/b"),
    )
    assert a == b
    assert len({a, b}) == 1


class TestCatalogLocators:

    def runnable(self):
        for capability in (Capability.CORE, Capability.REASONING, Capability.VISION):
            yield from DEFAULT_CATALOG[capability]

    def test_chat_models_download_gguf_first(self):
        for descriptor in self.runnable():
            assert descriptor.backend == Backend.LLAMA_CPP
            assert descriptor.download_locators.primary.endswith(".gguf"), descriptor.id

    def test_vision_models_carry_a_projector(self):
        for descriptor in DEFAULT_CATALOG[Capability.VISION]:
            assert "mmproj" in descriptor.download_locators.projector, descriptor.id

    def test_audio_models_run_on_whisper(self):
        for descriptor in DEFAULT_CATALOG[Capability.AUDIO]:
            assert descriptor.backend == Backend.WHISPER
            assert "faster-whisper" in descriptor.download_locators.primary
            assert "coreml" not in (descriptor.download_locators.alternate or "")

    def test_speech_models_have_no_llama_backend(self):
        for descriptor in DEFAULT_CATALOG[Capability.SPEECH]:
            assert descriptor.backend == Backend.KOKORO
