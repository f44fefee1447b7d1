"""
Configuration
=============

One explicit configuration object, built once at process start and passed
by reference into the orchestrator, every stage and the HTTP app.

Layering (later wins):
1. Built-in defaults (the dataclass defaults below)
2. YAML file (config.yaml, same section layout as the dataclasses)
3. Environment variables (PORT, WHISPER_BIN, ... see ENV_OVERRIDES)
"""

import os
import shlex
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Optional, Mapping

import yaml

from quickdub.errors import ConfigError
from quickdub.workspace import LANG_PATTERN


DEFAULT_CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "QUICKDUB_CONFIG"


@dataclass
class PathsConfig:
    artifact_dir: Path = Path("./uploads")
    models_dir: Path = Path("./models")


@dataclass
class WhisperConfig:
    binary: str = "/opt/whisper"
    # Resolved to <models_dir>/ggml-base.bin when left empty
    model: Optional[Path] = None


@dataclass
class TranslateConfig:
    url: str = "https://libretranslate.com/translate"
    source_lang: str = "id"
    target_lang: str = "hi"
    timeout_sec: float = 120.0


@dataclass
class TTSConfig:
    command: str = "tts --text_file {text_file} --out_path {out_path}"


@dataclass
class MediaConfig:
    ffmpeg_binary: str = "ffmpeg"
    sample_rate: int = 16000
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


@dataclass
class RunnerConfig:
    max_output_bytes: int = 200 * 1024 * 1024
    timeout_sec: float = 3600.0
    diagnostic_limit: int = 1000


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 10000
    max_upload_mb: int = 500


@dataclass
class EventsConfig:
    enabled: bool = True


@dataclass
class DubConfig:
    """Complete configuration for a quickdub process"""
    paths: PathsConfig = field(default_factory=PathsConfig)
    whisper: WhisperConfig = field(default_factory=WhisperConfig)
    translate: TranslateConfig = field(default_factory=TranslateConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    events: EventsConfig = field(default_factory=EventsConfig)

    @property
    def whisper_model(self) -> Path:
        if self.whisper.model:
            return Path(self.whisper.model)
        return self.paths.models_dir / "ggml-base.bin"

    @property
    def max_upload_bytes(self) -> int:
        return self.server.max_upload_mb * 1024 * 1024

    def to_dict(self) -> dict:
        data = asdict(self)
        data["whisper"]["model"] = str(self.whisper_model)
        return _stringify_paths(data)


# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "PORT": ("server", "port"),
    "WHISPER_BIN": ("whisper", "binary"),
    "WHISPER_MODEL": ("whisper", "model"),
    "LIBRETRANSLATE_URL": ("translate", "url"),
    "TTS_CMD": ("tts", "command"),
    "QUICKDUB_UPLOAD_DIR": ("paths", "artifact_dir"),
    "QUICKDUB_MODELS_DIR": ("paths", "models_dir"),
    "QUICKDUB_SOURCE_LANG": ("translate", "source_lang"),
    "QUICKDUB_TARGET_LANG": ("translate", "target_lang"),
}

_POSITIVE = {
    ("translate", "timeout_sec"),
    ("media", "sample_rate"),
    ("runner", "max_output_bytes"),
    ("runner", "timeout_sec"),
    ("runner", "diagnostic_limit"),
    ("server", "port"),
    ("server", "max_upload_mb"),
}


def load_config(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DubConfig:
    """
    Build the configuration from defaults, an optional YAML file and the
    environment.

    Args:
        path: Explicit YAML file. Falls back to $QUICKDUB_CONFIG, then to
            ./config.yaml if it exists.
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigError: unreadable file, unknown keys or invalid values
    """
    environ = os.environ if environ is None else environ
    config = DubConfig()

    explicit = path or environ.get(CONFIG_ENV_VAR)
    if explicit:
        config_path = Path(explicit)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
    else:
        config_path = Path(DEFAULT_CONFIG_FILE)

    if config_path.exists():
        _apply_sections(config, _read_yaml(config_path), source=str(config_path))

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            _set_value(config, section, key, value, source=env_name)

    _validate(config)
    return config


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def _apply_sections(config: DubConfig, data: dict, source: str) -> None:
    section_names = {f.name for f in fields(config)}
    for section, values in data.items():
        if section not in section_names:
            raise ConfigError(f"{source}: unknown section '{section}'")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"{source}: section '{section}' must be a mapping")
        for key, value in values.items():
            _set_value(config, section, key, value, source=source)


def _set_value(config: DubConfig, section: str, key: str, value, source: str) -> None:
    section_obj = getattr(config, section)
    field_types = {f.name: f.type for f in fields(section_obj)}
    if key not in field_types:
        raise ConfigError(f"{source}: unknown key '{section}.{key}'")

    current = getattr(section_obj, key)
    try:
        setattr(section_obj, key, _coerce(value, current, field_types[key]))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{source}: invalid value for '{section}.{key}': {value!r}") from e


def _coerce(value, current, declared):
    if value is None:
        return None
    # bool first: bool is a subclass of int
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
        raise ValueError(value)
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, Path) or "Path" in str(declared):
        return Path(str(value))
    return str(value)


def _validate(config: DubConfig) -> None:
    for section, key in _POSITIVE:
        value = getattr(getattr(config, section), key)
        if value <= 0:
            raise ConfigError(f"'{section}.{key}' must be positive, got {value}")

    if "{out_path}" not in config.tts.command:
        raise ConfigError("'tts.command' must contain the {out_path} placeholder")
    try:
        shlex.split(config.tts.command)
    except ValueError as e:
        raise ConfigError(f"'tts.command' is not a valid command line: {e}") from e

    for key in ("source_lang", "target_lang"):
        value = getattr(config.translate, key)
        if not LANG_PATTERN.fullmatch(value or ""):
            raise ConfigError(f"'translate.{key}' is not a language code: {value!r}")


def _stringify_paths(data):
    if isinstance(data, dict):
        return {k: _stringify_paths(v) for k, v in data.items()}
    if isinstance(data, Path):
        return str(data)
    return data
