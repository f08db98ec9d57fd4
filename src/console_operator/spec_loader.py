"""Console desired-state loading and persistence.

SECURITY: All file reads enforce a size limit. Input validation is performed
at the boundary so a pass only ever sees a valid Console.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import MAX_CONSOLE_FILE_SIZE_BYTES
from .models import Console

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when the desired state cannot be loaded, validated or written."""

    pass


def _format_validation_error(path: Path, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    return f"Validation failed for {path}:\n" + "\n".join(errors)


def load_console(path: Path) -> Console:
    """Load and validate a Console desired state from YAML.

    Both the Kubernetes-style document (apiVersion/kind/metadata/spec) and a
    flat spec mapping are accepted.

    Args:
        path: Path to the YAML file.

    Returns:
        Validated Console.

    Raises:
        SpecLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Console file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat console file {path}: {e}") from e

    if file_size > MAX_CONSOLE_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Console file exceeds maximum size of {MAX_CONSOLE_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read console file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Console file must contain a YAML mapping: {path}")

    if "apiVersion" not in raw_data and "spec" not in raw_data:
        # Flat format: the whole mapping is the spec
        raw_data = {"spec": raw_data}

    if not isinstance(raw_data.get("spec", {}), dict):
        raise SpecLoadError(f"Spec section must be a mapping: {path}")

    try:
        console = Console.model_validate(raw_data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(path, e)) from e

    logger.debug("Loaded console '%s' from %s", console.metadata.name, path)
    return console


def save_console(path: Path, console: Console) -> None:
    """Write a Console (spec and status) to YAML.

    The file is written to a sibling temp file first and renamed into
    place so a concurrent reader never observes a partial document.

    Raises:
        SpecLoadError: If the file cannot be written.
    """
    document = yaml.safe_dump(console.to_document(), sort_keys=False)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(document, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as e:
        raise SpecLoadError(f"Failed to write console file {path}: {e}") from e

    logger.debug("Saved console '%s' to %s", console.metadata.name, path)


def load_or_create_console(path: Path, create_default: bool) -> Console:
    """Load the Console, creating a default one when allowed and missing.

    Raises:
        SpecLoadError: If the file is missing and ``create_default`` is False,
            or if loading/writing fails.
    """
    if path.exists() or not create_default:
        return load_console(path)

    console = Console()
    save_console(path, console)
    logger.info(
        "Created default console",
        extra={"console_file": str(path), "version": console.spec.version},
    )
    return console
