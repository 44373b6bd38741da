"""Manifest loading - Reads, interpolates and normalizes tool manifests.

Load order:
1. Parse JSON or YAML
2. Substitute `$VAR` / `${VAR}` placeholders in every string value
3. Expand shorthand tool entries
4. Manifest-level validation (tools list shape and unique names)

Individually invalid tools do not fail the load; they are filtered when
listing and rejected when called.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .exceptions import ManifestError
from .normalizer import ManifestNormalizer
from .types import Manifest
from .validator import ToolValidator

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$([A-Z_][A-Z0-9_]*)|\$\{([A-Z_][A-Z0-9_]*)\}", re.IGNORECASE)

YAML_SUFFIXES = (".yaml", ".yml")


def interpolate_string(value: str, env: Mapping[str, str]) -> str:
    """Replace placeholders in one string; unresolved variables become empty."""

    def _substitute(match: "re.Match[str]") -> str:
        var_name = match.group(1) or match.group(2)
        env_value = env.get(var_name)
        if env_value is None:
            logger.warning(f"Environment variable ${var_name} not found. Replacing with empty string.")
            return ""
        return env_value

    return _PLACEHOLDER.sub(_substitute, value)


def interpolate_value(value: Any, env: Optional[Mapping[str, str]] = None) -> Any:
    """
    Recursively substitute placeholders in every string inside `value`.

    Dict keys are left alone. Returns a new structure.
    """
    env = os.environ if env is None else env
    if isinstance(value, str):
        return interpolate_string(value, env)
    if isinstance(value, dict):
        return {key: interpolate_value(item, env) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate_value(item, env) for item in value]
    return value


def parse_manifest_text(text: str, suffix: str = ".json") -> Dict[str, Any]:
    """Parse manifest source text, choosing YAML or JSON by file suffix."""
    try:
        if suffix.lower() in YAML_SUFFIXES:
            document = yaml.safe_load(text)
        else:
            document = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ManifestError(f"Could not parse manifest: {e}") from e

    if not isinstance(document, dict):
        raise ManifestError("Manifest must be an object with a \"tools\" field")
    return document


def build_manifest(
    document: Dict[str, Any],
    env: Optional[Mapping[str, str]] = None,
    debug: bool = False,
) -> Manifest:
    """
    Turn a parsed manifest document into a Manifest.

    Raises:
        ManifestError: tools missing, not a list, empty, or with duplicate names
    """
    document = interpolate_value(document, env)

    tools = document.get("tools")
    if isinstance(tools, list):
        document["tools"] = ManifestNormalizer().normalize_all(tools)

    result = ToolValidator().validate_manifest(document.get("tools"), debug=debug)
    structural = not isinstance(tools, list) or not tools
    if structural or result.duplicates:
        for error in result.errors:
            logger.error(f"Manifest error: {error}")
        raise ManifestError(
            f"Manifest is invalid: {result.errors[0]}",
            errors=result.errors,
        )

    for error in result.errors:
        logger.warning(f"Manifest entry skipped until fixed: {error}")

    return Manifest.model_validate(document)


def load_manifest(
    path: Union[str, Path],
    env: Optional[Mapping[str, str]] = None,
    debug: bool = False,
) -> Manifest:
    """
    Load a manifest file (.json, .yaml or .yml).

    Args:
        path: Manifest location
        env: Variables used for placeholder substitution (defaults to os.environ)
        debug: Log unknown tool fields

    Returns:
        Manifest with normalized tool entries
    """
    manifest_path = Path(path).expanduser().resolve()
    logger.info(f"Loading manifest from: {manifest_path}")

    try:
        text = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ManifestError(f"Manifest file {manifest_path} not found") from e
    except OSError as e:
        raise ManifestError(f"Could not read manifest file {manifest_path}: {e}") from e

    manifest = build_manifest(parse_manifest_text(text, manifest_path.suffix), env=env, debug=debug)
    logger.info(f"Loaded tool manifest from {manifest_path}: {len(manifest.tools)} tools")
    return manifest
