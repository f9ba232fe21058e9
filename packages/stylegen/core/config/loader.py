"""Configuration loading utilities with JSON and YAML support."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from stylegen.core.config.errors import ConfigError
from stylegen.core.config.models import GeneratorSettings
from stylegen.core.generation.models import ImageRequest, StyleGuide

logger = logging.getLogger(__name__)

CONFIG_FILES: tuple[str, ...] = (
    ".stylegenrc",
    ".stylegenrc.json",
    "stylegen.config.json",
    ".stylegen.json",
    ".stylegen.yaml",
    ".stylegen.yml",
)

# Config-file key → settings/CLI option key
_KEY_MAP: dict[str, str] = {
    "styleGuide": "style_guide",
    "images": "images",
    "output": "output",
    "apiKey": "api_key",
    "model": "model",
    "size": "size",
    "format": "format",
    "filename": "filename",
    "concurrency": "concurrency",
    "interactive": "interactive",
}


def detect_format(file_path: Path | str) -> str:
    """Detect config file format from extension.

    Extensionless rc files (``.stylegenrc``) are JSON.

    Example:
        >>> detect_format(".stylegen.yml")
        'yaml'
    """
    suffix = Path(file_path).suffix.lower()
    if suffix in {".yaml", ".yml"}:
        return "yaml"
    if suffix in {".json", ""}:
        return "json"
    raise ConfigError(f"Unsupported config format: {suffix}")


def load_config(path: str | Path) -> dict[str, Any]:
    """Load and return a raw configuration dictionary.

    Args:
        path: Path to config file (.json, .yaml, .yml, or .stylegenrc)

    Returns:
        Raw configuration dictionary

    Raises:
        ConfigError: If the file is missing, unparsable, or not an object
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"File not found: {path.resolve()}")

    fmt = detect_format(path)
    text = path.read_text(encoding="utf-8")
    try:
        if fmt == "yaml":
            content = yaml.safe_load(text)
            # safe_load returns None for empty files
            content = content if content is not None else {}
        else:
            content = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid {fmt.upper()} in {path}: {e}") from e

    if not isinstance(content, dict):
        raise ConfigError(f"Expected an object in {path}, got {type(content).__name__}")
    return content


def find_config_file(cwd: Path | None = None) -> Path | None:
    """Find the first known config file in a directory."""
    base = cwd or Path.cwd()
    for filename in CONFIG_FILES:
        candidate = base / filename
        if candidate.is_file():
            return candidate
    return None


def load_config_file(cwd: Path | None = None) -> tuple[dict[str, Any], Path] | None:
    """Load the project config file, if any.

    Unparsable files are skipped with a warning.

    Returns:
        (config, path) or None if no usable config file exists
    """
    base = cwd or Path.cwd()
    for filename in CONFIG_FILES:
        candidate = base / filename
        if not candidate.is_file():
            continue
        try:
            return load_config(candidate), candidate
        except ConfigError as e:
            logger.warning("Could not parse %s: %s", filename, e)
    return None


def merge_options(
    cli_options: Mapping[str, Any], file_config: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Merge CLI options with config-file options.

    CLI options take precedence; a file value is used only when the CLI
    option is unset (None). Unknown file keys are ignored.

    Args:
        cli_options: Options from the command line (keys as in _KEY_MAP values)
        file_config: Options from the config file (camelCase keys)

    Returns:
        Merged options
    """
    merged = dict(cli_options)
    if not file_config:
        return merged

    for config_key, cli_key in _KEY_MAP.items():
        if file_config.get(config_key) is not None and merged.get(cli_key) is None:
            merged[cli_key] = file_config[config_key]
    return merged


def get_config_template() -> dict[str, Any]:
    """Default config file contents written by ``stylegen init``."""
    defaults = GeneratorSettings()
    return {
        "styleGuide": "./style-guide.json",
        "images": "./images.json",
        "output": "./output",
        "model": defaults.model,
        "size": defaults.image_size,
        "format": defaults.output_format,
        "filename": defaults.filename_template,
        "concurrency": defaults.concurrency,
        "interactive": defaults.interactive,
    }


def build_settings(options: Mapping[str, Any]) -> GeneratorSettings:
    """Build GeneratorSettings from merged options.

    Raises:
        ConfigError: If an option value is invalid
    """
    fields = {
        "api_key": options.get("api_key"),
        "model": options.get("model"),
        "output_dir": options.get("output"),
        "image_size": options.get("size"),
        "output_format": options.get("format"),
        "filename_template": options.get("filename"),
        "concurrency": options.get("concurrency"),
        "interactive": options.get("interactive"),
    }
    try:
        return GeneratorSettings.model_validate(
            {key: value for key, value in fields.items() if value is not None}
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or None
        raise ConfigError(f"Invalid option: {first['msg']}", field=field) from e


def _read_json_input(path: str | Path) -> Any:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"File not found: {path.resolve()}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def load_style_guide(path: str | Path) -> StyleGuide:
    """Load and validate a style guide JSON file.

    Raises:
        ConfigError: If the file is missing or invalid
    """
    data = _read_json_input(path)
    if not isinstance(data, dict):
        raise ConfigError(f"Style guide in {path} must be a JSON object", field="style_guide")
    try:
        return StyleGuide.from_raw(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid style guide in {path}: {e}", field="style_guide") from e


def load_image_requests(path: str | Path) -> list[ImageRequest]:
    """Load image requests from a JSON file.

    Accepts a bare list or an object with an ``images`` list.

    Raises:
        ConfigError: If the file is missing, empty, invalid, or has duplicate ids
    """
    data = _read_json_input(path)
    items = data.get("images") if isinstance(data, dict) else data
    if not isinstance(items, list) or not items:
        raise ConfigError("No images found in configuration", field="images")

    requests: list[ImageRequest] = []
    for index, item in enumerate(items):
        try:
            requests.append(ImageRequest.model_validate(item))
        except ValidationError as e:
            raise ConfigError(f"Invalid image definition #{index + 1}: {e}", field="images") from e

    seen: set[str] = set()
    for request in requests:
        if request.id in seen:
            raise ConfigError(f'Duplicate image id "{request.id}"', field="images")
        seen.add(request.id)
    return requests
