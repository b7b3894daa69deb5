"""Configuration for the ZhiDao streaming client.

Values come from environment variables (optionally loaded from a ``.env``
file) with sensible defaults for the hosted backend.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://api1.zhidao.zigao.wang"
DEFAULT_TIMEOUT = 300.0  # multi-stage LLM pipeline, keep the connection open for minutes
DEFAULT_LOCALE = "en"
DEFAULT_HISTORY_PATH = Path.home() / ".zhidao" / "saved_conversations.json"

SUPPORTED_LOCALES = ("en", "zh")


@dataclass
class ClientConfig:
    """Settings shared by the stream session, history store and CLI."""
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    locale: str = DEFAULT_LOCALE
    history_path: Path = DEFAULT_HISTORY_PATH

    @property
    def stream_url(self) -> str:
        """Endpoint that streams the answer to a question."""
        return f"{self.base_url.rstrip('/')}/stream-question"


def load_config(env_file: Optional[str] = None) -> ClientConfig:
    """Build a ClientConfig from the environment.

    Args:
        env_file: Optional path to a dotenv file. When omitted, ``.env`` in the
            working directory is used if present.

    Returns:
        The resolved configuration

    Raises:
        ValueError: If ZHIDAO_TIMEOUT is not a positive number or
            ZHIDAO_LOCALE is not supported
    """
    load_dotenv(env_file)

    raw_timeout = os.environ.get("ZHIDAO_TIMEOUT", str(DEFAULT_TIMEOUT))
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise ValueError(f"ZHIDAO_TIMEOUT must be a number, got {raw_timeout!r}") from None
    if timeout <= 0:
        raise ValueError("ZHIDAO_TIMEOUT must be positive")

    locale = os.environ.get("ZHIDAO_LOCALE", DEFAULT_LOCALE).strip().lower()
    if locale not in SUPPORTED_LOCALES:
        raise ValueError(f"ZHIDAO_LOCALE must be one of {', '.join(SUPPORTED_LOCALES)}")

    history_path = os.environ.get("ZHIDAO_HISTORY_PATH")

    return ClientConfig(
        base_url=os.environ.get("ZHIDAO_BASE_URL", DEFAULT_BASE_URL),
        timeout=timeout,
        locale=locale,
        history_path=Path(history_path).expanduser() if history_path else DEFAULT_HISTORY_PATH,
    )
