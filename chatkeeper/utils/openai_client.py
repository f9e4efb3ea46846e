"""OpenAI client factory for the conversation backend."""

import os
from typing import Optional

import openai
from dotenv import load_dotenv

from chatkeeper.utils.errors import ConfigError

# Load environment variables from .env file (for local development)
load_dotenv()


def get_openai_client(api_key: Optional[str] = None, timeout: float = 60.0) -> openai.OpenAI:
    """Initialize and return an OpenAI client.

    ``api_key`` wins over the ``OPENAI_API_KEY`` environment variable.

    Raises:
        ConfigError: If no API key is configured
    """
    api_key = api_key or os.getenv("OPENAI_API_KEY")

    if not api_key:
        raise ConfigError("OpenAI API key not found. Set OPENAI_API_KEY in the environment or .env")

    return openai.OpenAI(api_key=api_key, timeout=timeout)
