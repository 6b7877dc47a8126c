"""
Extract tool calls from model output.

Models are prompted to emit fenced JSON blocks:

```json
{"id": "call_1", "name": "list_files", "parameters": {"directory": "/tmp"}}
```

The older ```tool {"tool": ..., "parameters": ...}``` form is accepted as well.
"""

import json
import re
import uuid
from typing import Optional

from klu.engine.types import ToolCall
from klu.utils.logging import logger

# ```json {...} ``` / ```tool {...} ``` / bare ``` {...} ```
FENCED_PATTERN = re.compile(r"```(?:json|tool)?\s*(\{.*?\})\s*```", re.DOTALL)

# Standalone {"name"|"tool": "...", "parameters"|"arguments": {...}}
INLINE_PATTERN = re.compile(
    r'\{\s*"(?:name|tool)"\s*:\s*"[^"]+"\s*,\s*"(?:parameters|arguments)"\s*:\s*\{[^{}]*\}\s*\}',
    re.DOTALL,
)


class ToolCallParser:
    """Finds tool-call JSON in generated text, in order of appearance."""

    def parse(self, text: str) -> list[ToolCall]:
        """
        Parse every tool call in a response.

        Args:
            text: The model's response text

        Returns:
            Tool calls in the order they appear, empty if none
        """
        calls = []
        for match in FENCED_PATTERN.finditer(text):
            call = self._to_call(match.group(1))
            if call:
                calls.append(call)

        if not calls:
            # Some models skip the code fence
            for match in INLINE_PATTERN.finditer(text):
                call = self._to_call(match.group(0))
                if call:
                    calls.append(call)

        if calls:
            logger.info(f"Parsed {len(calls)} tool call(s): {[c.name for c in calls]}")
        return calls

    def _to_call(self, raw: str) -> Optional[ToolCall]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse tool call JSON: {raw[:200]}")
            return None

        if not isinstance(data, dict):
            return None

        name = data.get("name") or data.get("tool")
        if not isinstance(name, str) or not name:
            return None

        arguments = data.get("parameters", data.get("arguments", {}))
        if not isinstance(arguments, dict):
            # Keep the call so validation can report the bad arguments
            arguments = {"_raw": arguments}

        call_id = data.get("id")
        if not isinstance(call_id, str) or not call_id:
            call_id = f"call_{uuid.uuid4().hex[:8]}"

        return ToolCall(name=name, arguments=arguments, call_id=call_id)
