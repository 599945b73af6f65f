"""Configuration loading: config/config.yaml over built-in defaults, secrets from env."""
import copy
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG = {
    "telegram": {
        "token": "",
        "api_url": "https://api.telegram.org",
        "allowed_user_id": 0,
        "poll_timeout": 30,
    },
    "feed": {
        "name": "audiofeed",
        "title": "Audio Feed",
        "max_items": 50,
        "files_location": "data/files",
        "base_url": "",
    },
    "storage": {"db_path": "data/audiofeed.db"},
    "tools": {
        "yt_dlp": "yt-dlp",
        "ffprobe": "ffprobe",
        "vot_cli": "vot-cli",
        "edge_tts": "edge-tts",
        "cookies_file": "",
        "metadata_timeout": 120,
        "download_timeout": 1800,
        "subtitles_timeout": 300,
        "vot_timeout": 1800,
        "probe_timeout": 30,
        "tts_timeout": 300,
    },
    "voiceover": {"target_lang": "ru"},
    "tts": {
        "enabled": True,
        "voice": "ru-RU-DmitryNeural",
        "chunk_chars": 3000,
        "chunk_delay": 0.1,
    },
    "translate": {
        "target_lang": "ru",
        "chunk_chars": 5000,
        "chunk_delay": 0.5,
        "timeout": 60,
        # Tried in order; "yandex" uses YANDEX_TRANSLATE_KEY / YANDEX_FOLDER_ID
        "mirrors": [{"type": "yandex"}],
    },
    "dispatcher": {"delete_delay": 5, "list_limit": 10},
    "article": {"timeout": 30},
    "logging": {"retention_days": 30},
}

# Environment variable -> (section, key, type)
ENV_OVERRIDES = {
    "AUDIOFEED_TELEGRAM_TOKEN": ("telegram", "token", str),
    "AUDIOFEED_ALLOWED_USER_ID": ("telegram", "allowed_user_id", int),
    "AUDIOFEED_COOKIES_FILE": ("tools", "cookies_file", str),
    "YANDEX_TRANSLATE_KEY": ("translate", "yandex_api_key", str),
    "YANDEX_FOLDER_ID": ("translate", "yandex_folder_id", str),
}


class ConfigError(Exception):
    """Config file or environment value is invalid."""


def get_project_dir() -> Path:
    """Repository root (parent of the audiofeed package)."""
    return Path(__file__).parent.parent


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None, env_file: Path | None = None) -> dict:
    """Load configuration.

    Args:
        config_path: YAML file (default: config/config.yaml under the project dir).
            A missing file means defaults only.
        env_file: .env file for secrets (default: .env under the project dir)

    Returns:
        Nested dict of sections, defaults filled in
    """
    project_dir = get_project_dir()
    load_dotenv(env_file or project_dir / ".env")

    config_path = config_path or project_dir / "config" / "config.yaml"
    user_config = {}
    if config_path.exists():
        try:
            user_config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")
        if not isinstance(user_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping")

    config = deep_merge(DEFAULT_CONFIG, user_config)

    for var, (section, key, cast) in ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if not value:
            continue
        try:
            config[section][key] = cast(value)
        except ValueError:
            raise ConfigError(f"{var} must be {cast.__name__}, got {value!r}")

    return config


def resolve_path(value: str) -> Path:
    """Relative config paths are taken from the project dir."""
    path = Path(value).expanduser()
    return path if path.is_absolute() else get_project_dir() / path
