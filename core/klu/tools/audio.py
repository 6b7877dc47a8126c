"""
Audio transcription tool.
"""

import asyncio
import base64
from pathlib import Path

from klu.engine.cancellation import CancellationToken
from klu.engine.types import Attachment, AttachmentKind, ChatMessage, Role
from klu.errors import InvalidParameters
from klu.models.catalog import Capability
from klu.tools.base import AudioRequest, ToolCategory, ToolName, ToolParameter
from klu.tools.inference import ModelBackedTool
from klu.utils.logging import logger

TRANSCRIPTION_PROMPT = (
    "Transcribe the audio precisely, including speaker indicators "
    "if multiple speakers are present."
)


def encode_audio(path: Path) -> str:
    """Read an audio file into a base64 data URI."""
    audio_format = path.suffix.lstrip(".").lower() or "wav"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:audio/{audio_format};base64,{data}"


class TranscribeAudioTool(ModelBackedTool):
    """Transcribe an audio file with the audio model."""

    capability = Capability.AUDIO

    def __init__(self, cache, engine, registry, settings):
        super().__init__(
            cache,
            engine,
            registry,
            settings,
            name=ToolName.TRANSCRIBE_AUDIO,
            description="Transcribe speech in an audio file to text",
            category=ToolCategory.AUDIO,
            parameters=[
                ToolParameter(
                    name="audio_path",
                    type="string",
                    description="Path to the audio file",
                    required=True,
                ),
            ],
        )

    async def execute(self, request: AudioRequest, token: CancellationToken) -> str:
        path = Path(request.path).expanduser()
        if not path.exists():
            raise InvalidParameters(f"Audio file does not exist at path: {request.path}")
        if not path.is_file():
            raise InvalidParameters(f"Not a file: {request.path}")

        loop = asyncio.get_event_loop()
        data_uri = await loop.run_in_executor(None, encode_audio, path)

        logger.info(f"Transcribing {path}")
        message = ChatMessage(
            role=Role.USER,
            content="Transcribe this audio file.",
            attachments=[
                Attachment(
                    kind=AttachmentKind.AUDIO, path=str(path.resolve()), data_uri=data_uri
                )
            ],
        )
        result = await self.run_model([message], TRANSCRIPTION_PROMPT, token)

        transcript = result.output_text.strip()
        return transcript or "No speech was detected in the audio file."
