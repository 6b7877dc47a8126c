"""
Klu Tools - Specialized models and the filesystem, callable by the core model.
"""

from klu.tools.base import Tool, ToolName, ToolResult
from klu.tools.parser import ToolCallParser

__all__ = ["Tool", "ToolName", "ToolResult", "ToolCallParser"]
