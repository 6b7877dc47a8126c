"""
Image analysis tool.
"""

import asyncio
import base64
import io
from pathlib import Path

from PIL import Image

from klu.config import IMAGE_TARGET_SIZE
from klu.engine.cancellation import CancellationToken
from klu.engine.types import Attachment, AttachmentKind, ChatMessage, Role
from klu.errors import InvalidParameters
from klu.models.catalog import Capability
from klu.tools.base import ImageRequest, ToolCategory, ToolName, ToolParameter
from klu.tools.inference import ModelBackedTool
from klu.utils.logging import logger

ANALYSIS_PROMPT = "Analyze the image and describe its contents in detail."


def normalize_image(path: Path, size: tuple[int, int] = IMAGE_TARGET_SIZE) -> str:
    """
    Decode an image, convert it to RGB at the target size and return a PNG data URI.

    Raises:
        InvalidParameters: If the file is not a decodable image
    """
    try:
        with Image.open(path) as img:
            img.verify()
        # verify() leaves the image unusable, reopen to decode
        with Image.open(path) as img:
            normalized = img.convert("RGB").resize(size, Image.LANCZOS)
    except (OSError, SyntaxError, ValueError) as e:
        raise InvalidParameters(f"Could not decode image at path: {path} ({e})") from e

    buffer = io.BytesIO()
    normalized.save(buffer, format="PNG")
    data = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{data}"


class AnalyzeImageTool(ModelBackedTool):
    """Describe an image with the vision model."""

    capability = Capability.VISION

    def __init__(self, cache, engine, registry, settings):
        super().__init__(
            cache,
            engine,
            registry,
            settings,
            name=ToolName.ANALYZE_IMAGE,
            description="Describe the contents of an image file",
            category=ToolCategory.VISION,
            parameters=[
                ToolParameter(
                    name="image_path",
                    type="string",
                    description="Path to the image file",
                    required=True,
                ),
            ],
        )

    async def execute(self, request: ImageRequest, token: CancellationToken) -> str:
        path = Path(request.path).expanduser()
        if not path.is_file():
            raise InvalidParameters(f"Image does not exist at path: {request.path}")

        loop = asyncio.get_event_loop()
        data_uri = await loop.run_in_executor(None, normalize_image, path)

        logger.info(f"Analyzing image {path}")
        message = ChatMessage(
            role=Role.USER,
            content=ANALYSIS_PROMPT,
            attachments=[
                Attachment(kind=AttachmentKind.IMAGE, path=str(path), data_uri=data_uri)
            ],
        )
        result = await self.run_model([message], ANALYSIS_PROMPT, token)
        return result.output_text.strip()
