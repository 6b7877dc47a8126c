"""
Prompt construction: system prompt plus conversation history in chat format.
"""

from klu.config import THINK_CLOSE, THINK_OPEN
from klu.engine.types import AttachmentKind, ChatMessage, Role


def format_for_tokenizer(text: str) -> str:
    """Drop thinking delimiters so earlier traces are not re-parsed as markup."""
    return text.replace(THINK_OPEN, "").replace(THINK_CLOSE, "")


def build_messages(turn_input: list[ChatMessage], system_prompt: str) -> list[dict]:
    """
    Convert history into chat-completion messages.

    The system prompt always comes first. Any system messages already in the
    history follow it in their original position.
    """
    messages = []
    if system_prompt:
        messages.append({"role": Role.SYSTEM.value, "content": system_prompt})

    for message in turn_input:
        messages.append(_to_chat_message(message))

    return messages


def _to_chat_message(message: ChatMessage) -> dict:
    text = message.content
    if message.role == Role.ASSISTANT:
        text = format_for_tokenizer(text)
    elif message.role == Role.TOOL:
        label = message.tool_name or "tool"
        text = f"Result of {label} (call {message.tool_call_id}):\n{text}"

    chat: dict = {"role": message.role.value, "content": text}
    if message.role == Role.TOOL and message.tool_call_id:
        chat["tool_call_id"] = message.tool_call_id

    if message.attachments:
        parts: list[dict] = [{"type": "text", "text": text}]
        for attachment in message.attachments:
            if attachment.kind == AttachmentKind.IMAGE and attachment.data_uri:
                parts.append(
                    {"type": "image_url", "image_url": {"url": attachment.data_uri}}
                )
            elif attachment.kind == AttachmentKind.AUDIO and attachment.data_uri:
                # "data:audio/wav;base64,<data>"
                header, data = attachment.data_uri.split(",", 1)
                audio_format = header.split(";")[0].split("/")[-1]
                parts.append(
                    {
                        "type": "input_audio",
                        "input_audio": {"data": data, "format": audio_format},
                    }
                )
        chat["content"] = parts

    return chat
