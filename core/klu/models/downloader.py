"""
Resolve catalog download locators to local model weights.
Weights are fetched from HuggingFace on first use and reused afterwards.
"""

import asyncio
from pathlib import Path
from typing import Optional

from huggingface_hub import hf_hub_download, snapshot_download

from klu.config import MODELS_DIR
from klu.models.catalog import Backend, ModelDescriptor
from klu.utils.logging import logger


class ModelDownloader:
    """
    Turns an opaque locator into a path the loader can open.

    Accepted locators:
    - a local file or directory path
    - "org/repo:file.gguf" for a single file, or "org/repo:*Q4_K_M.gguf" for a match
    - "org/repo" or "https://huggingface.co/org/repo" for a whole repository
    - "org/repo/tree/<revision>/<subdir>" for one folder of a repository
    """

    HF_URL_PREFIX = "https://huggingface.co/"

    def __init__(self, models_dir: Path | None = None):
        self.models_dir = models_dir or MODELS_DIR

    def parse_locator(self, locator: str) -> tuple[str, Optional[str], Optional[str]]:
        """
        Split a HuggingFace locator.

        Returns:
            (repo_id, filename, subfolder)

        Raises:
            ValueError: For locators that are not HuggingFace references
        """
        ref = locator.strip()
        if ref.startswith(self.HF_URL_PREFIX):
            ref = ref[len(self.HF_URL_PREFIX):]
        elif "://" in ref:
            raise ValueError(f"Unsupported model locator: {locator}")

        filename = None
        if ":" in ref:
            ref, filename = ref.split(":", 1)

        parts = ref.strip("/").split("/")
        if len(parts) < 2:
            raise ValueError(f"Unsupported model locator: {locator}")

        repo_id = "/".join(parts[:2])
        subfolder = None
        # org/repo/tree/main/<subdir>
        if len(parts) > 4 and parts[2] == "tree":
            subfolder = "/".join(parts[4:])

        return repo_id, filename, subfolder

    def get_model_path(self, descriptor: ModelDescriptor) -> Optional[Path]:
        """Path to already downloaded weights for a model, or None."""
        model_dir = self.models_dir / descriptor.id
        if not model_dir.exists():
            return None
        return self._find_weights(model_dir, descriptor.backend)

    def is_downloaded(self, descriptor: ModelDescriptor) -> bool:
        return self.get_model_path(descriptor) is not None

    async def resolve(self, descriptor: ModelDescriptor) -> Path:
        """
        Local weights for a descriptor, downloading them if needed.
        The primary locator is tried first, then the alternate.

        Raises:
            FileNotFoundError: If no locator yields usable weights
        """
        existing = self.get_model_path(descriptor)
        if existing:
            logger.info(f"Using cached weights for {descriptor.id}: {existing}")
            return existing

        locators = [descriptor.download_locators.primary]
        if descriptor.download_locators.alternate:
            locators.append(descriptor.download_locators.alternate)

        errors = []
        for locator in locators:
            try:
                return await self.download(descriptor.id, locator, descriptor.backend)
            except Exception as e:
                logger.warning(f"Locator {locator} failed for {descriptor.id}: {e}")
                errors.append(f"{locator}: {e}")

        raise FileNotFoundError(
            f"No usable weights for {descriptor.id} ({'; '.join(errors)})"
        )

    async def resolve_projector(self, descriptor: ModelDescriptor) -> Optional[Path]:
        """
        Local mmproj weights for a vision model, or None if it has none.

        Raises:
            FileNotFoundError: If the projector locator yields no weights
        """
        locator = descriptor.download_locators.projector
        if not locator:
            return None

        model_dir = self.models_dir / descriptor.id
        existing = self._find_projector(model_dir) if model_dir.exists() else None
        if existing:
            return existing

        local = Path(locator).expanduser()
        if local.is_file():
            return local

        downloaded = await self._fetch(descriptor.id, locator, "mmproj*.gguf")
        projector = downloaded if downloaded.is_file() else self._find_projector(downloaded)
        if projector is None:
            raise FileNotFoundError(f"No projector weights behind {locator}")

        logger.info(f"Downloaded projector for {descriptor.id} to {projector}")
        return projector

    async def download(
        self, model_id: str, locator: str, backend: Backend = Backend.LLAMA_CPP
    ) -> Path:
        """Fetch the weights behind one locator into the models directory."""
        local = Path(locator).expanduser()
        if local.exists():
            weights = local if local.is_file() else self._find_weights(local, backend)
            if weights is None:
                raise FileNotFoundError(f"No {backend.value} weights in {local}")
            return weights

        pattern = "*" if backend == Backend.WHISPER else "*.gguf"
        downloaded = await self._fetch(model_id, locator, pattern)
        if downloaded.is_file():
            weights = downloaded
        else:
            weights = self._find_weights(downloaded, backend)
        if weights is None:
            raise FileNotFoundError(f"No {backend.value} weights behind {locator}")

        logger.info(f"Downloaded {model_id} to {weights}")
        return weights

    async def _fetch(self, model_id: str, locator: str, default_pattern: str) -> Path:
        repo_id, filename, subfolder = self.parse_locator(locator)
        model_dir = self.models_dir / model_id
        model_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Downloading {model_id} from {repo_id}...")

        loop = asyncio.get_event_loop()

        def do_download() -> str:
            if filename and not _is_glob(filename):
                return hf_hub_download(
                    repo_id=repo_id, filename=filename, local_dir=model_dir
                )
            if filename:
                pattern = filename
            elif subfolder:
                pattern = f"{subfolder}/*"
            else:
                pattern = default_pattern
            return snapshot_download(
                repo_id=repo_id, allow_patterns=[pattern], local_dir=model_dir
            )

        return Path(await loop.run_in_executor(None, do_download))

    def _find_weights(self, directory: Path, backend: Backend) -> Optional[Path]:
        if backend == Backend.WHISPER:
            # CTranslate2 models are loaded from the folder holding model.bin
            folders = sorted(p.parent for p in directory.rglob("model.bin"))
            return folders[0] if folders else None

        candidates = sorted(
            p for p in directory.rglob("*.gguf") if "mmproj" not in p.name.lower()
        )
        return candidates[0] if candidates else None

    def _find_projector(self, directory: Path) -> Optional[Path]:
        candidates = sorted(
            p for p in directory.rglob("*.gguf") if "mmproj" in p.name.lower()
        )
        return candidates[0] if candidates else None


def _is_glob(filename: str) -> bool:
    return any(ch in filename for ch in "*?[")
