"""Configuration settings for Klu Core."""

import os
from pathlib import Path

# Paths
DATA_DIR = Path.home() / ".klu"
MODELS_DIR = DATA_DIR / "models"

# Server
HOST = "127.0.0.1"
PORT = 7878

# Logging
LOG_LEVEL = os.environ.get("KLU_LOG_LEVEL", "INFO").upper()

# API
API_PREFIX = "/api"

# Generation
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096
MAX_TOOL_ROUNDS = 5
THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

# Tools
MAX_LISTING_ENTRIES = 100
IMAGE_TARGET_SIZE = (448, 448)

DEFAULT_SYSTEM_PROMPT = (
    "You are Klu, a helpful assistant running entirely on this computer. "
    "Answer clearly and concisely. When a question needs a file listing, "
    "an audio transcript, an image description or careful step-by-step "
    "reasoning, call the matching tool instead of guessing."
)
