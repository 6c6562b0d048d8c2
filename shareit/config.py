"""
Configuration module for ShareIt.
Loads environment variables and provides config objects.
"""
import json
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Password table key whose permissions apply to anonymous callers.
DEFAULT_PASSWORD = "password"

DEFAULT_HIGHLIGHTING_LANGUAGES = [
    "auto",
    "bash",
    "c",
    "cpp",
    "csharp",
    "css",
    "diff",
    "dockerfile",
    "go",
    "html",
    "ini",
    "java",
    "javascript",
    "json",
    "kotlin",
    "lua",
    "makefile",
    "markdown",
    "nginx",
    "php",
    "plaintext",
    "python",
    "ruby",
    "rust",
    "scss",
    "shell",
    "sql",
    "swift",
    "toml",
    "typescript",
    "xml",
    "yaml",
]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return _env_int(name, 0)


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_passwords(name: str) -> Dict[str, List[str]]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return {DEFAULT_PASSWORD: ["create_any", "update_own", "custom_name"]}
    try:
        table = json.loads(raw)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"{name} must be a JSON object: {e}") from e
    if not isinstance(table, dict) or not all(
        isinstance(perms, list) for perms in table.values()
    ):
        raise RuntimeError(f"{name} must map passwords to lists of permissions")
    return table


class Settings:
    """Application settings loaded from environment variables."""

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    DEBUG: bool = _env_bool("DEBUG", "True")
    APP_DOMAIN: str = os.getenv("APP_DOMAIN", "http://localhost:8000")
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "./shares")

    PASSWORDS: Dict[str, List[str]] = _env_passwords("PASSWORDS")

    MIN_NAME_LENGTH: int = _env_int("MIN_NAME_LENGTH", 1)
    MAX_NAME_LENGTH: int = _env_int("MAX_NAME_LENGTH", 32)
    RANDOM_NAME_LENGTH: int = _env_int("RANDOM_NAME_LENGTH", 8)
    RANDOM_NAME_ATTEMPT_LIMIT: int = _env_int("RANDOM_NAME_ATTEMPT_LIMIT", 3)

    MAX_UPLOAD_SIZE: int = _env_int("MAX_UPLOAD_SIZE", 2_000_000)
    MAX_LINK_LENGTH: int = _env_int("MAX_LINK_LENGTH", 255)
    # Seconds; None means shares may live forever.
    MAX_EXPIRY_TIME: Optional[int] = _env_optional_int("MAX_EXPIRY_TIME")
    ALLOWED_MIME_TYPES: List[str] = _env_list("ALLOWED_MIME_TYPES", [])
    DISALLOWED_MIME_TYPES: List[str] = _env_list("DISALLOWED_MIME_TYPES", ["text/html"])
    ALLOWED_LINK_SCHEMES: List[str] = _env_list("ALLOWED_LINK_SCHEMES", ["http", "https"])

    HIGHLIGHTING_LANGUAGES: List[str] = _env_list(
        "HIGHLIGHTING_LANGUAGES", DEFAULT_HIGHLIGHTING_LANGUAGES
    )
    DEFAULT_HIGHLIGHTING_LANGUAGE: str = os.getenv("DEFAULT_HIGHLIGHTING_LANGUAGE", "auto")
    DEFAULT_MIME_TYPE: str = os.getenv("DEFAULT_MIME_TYPE", "application/octet-stream")

    EXPIRY_CHECK_INTERVAL: int = _env_int("EXPIRY_CHECK_INTERVAL", 60)

    def random_name_length(self) -> int:
        """Starting random name length, clamped into the allowed name lengths."""
        return max(self.MIN_NAME_LENGTH, min(self.RANDOM_NAME_LENGTH, self.MAX_NAME_LENGTH))


settings = Settings()
