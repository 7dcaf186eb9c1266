"""Reading and writing the backend descriptor (backend.tf)."""

import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Tuple, Union

import structlog
from pydantic import ValidationError

from ..errors import DescriptorError
from ..models import BackendDescriptor

logger = structlog.get_logger()

_ASSIGNMENT = re.compile(r'^\s*([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.+?)\s*$')
_QUOTED = re.compile(r'^"((?:[^"\\]|\\.)*)"$')

# Field order of the rendered block
_FIELDS = ("bucket", "key", "region", "dynamodb_table", "encrypt", "workspace_key_prefix")


def render_descriptor(descriptor: BackendDescriptor) -> str:
    """
    Serialize a descriptor into the `terraform { backend "s3" {...} }` block.

    Args:
        descriptor: Backend descriptor

    Returns:
        Descriptor text, newline terminated
    """
    values = descriptor.model_dump()
    width = max(len(name) for name in _FIELDS)

    lines = ["terraform {", '  backend "s3" {']
    for name in _FIELDS:
        value = values[name]
        if value is None:
            continue
        lines.append(f"    {name.ljust(width)} = {_format_value(value)}")
    lines += ["  }", "}"]

    return "\n".join(lines) + "\n"


def parse_descriptor(text: str) -> BackendDescriptor:
    """
    Parse descriptor text into a typed descriptor.

    Accepts either a full `terraform { backend "s3" { ... } }` block or a
    bare list of assignments (partial backend configuration file).

    Args:
        text: Descriptor text

    Returns:
        BackendDescriptor

    Raises:
        DescriptorError: If the bucket or lock table attribute is missing
    """
    attributes = _parse_attributes(text)

    missing = [name for name in ("bucket", "dynamodb_table") if not attributes.get(name)]
    if missing:
        raise DescriptorError(
            f"Could not extract {' and '.join(missing)} from backend configuration"
        )

    try:
        return BackendDescriptor(
            **{name: value for name, value in attributes.items() if name in _FIELDS}
        )
    except ValidationError as e:
        raise DescriptorError(f"Invalid backend configuration: {e}") from e


def read_identifiers(text: str) -> Tuple[str, str]:
    """Extract the bucket and lock table identifiers from descriptor text."""
    descriptor = parse_descriptor(text)
    return descriptor.bucket, descriptor.dynamodb_table


def load_descriptor(path: Union[str, Path]) -> BackendDescriptor:
    """
    Read and parse the descriptor file.

    Raises:
        DescriptorError: If the file does not exist or cannot be parsed
    """
    path = Path(path)
    if not path.is_file():
        raise DescriptorError(
            f"{path.name} file not found. Cannot determine backend configuration.",
            path=str(path),
        )

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DescriptorError(f"Failed to read {path}: {e}", path=str(path)) from e

    try:
        return parse_descriptor(text)
    except DescriptorError as e:
        raise DescriptorError(f"{e.message} in {path.name}", path=str(path)) from e


def write_descriptor(path: Union[str, Path], descriptor: BackendDescriptor) -> Path:
    """
    Write the descriptor, replacing any existing file.

    The text is written to a temporary file in the same directory and then
    moved over the target, so an interrupted write never leaves a truncated
    descriptor behind.

    Args:
        path: Target descriptor path
        descriptor: Backend descriptor

    Returns:
        The written path

    Raises:
        DescriptorError: If the file cannot be written
    """
    path = Path(path)
    text = render_descriptor(descriptor)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        Path(tmp_name).unlink(missing_ok=True)
        raise DescriptorError(f"Failed to write {path}: {e}", path=str(path)) from e

    logger.info("Backend configuration written", path=str(path), bucket=descriptor.bucket)

    return path


def remove_descriptor(path: Union[str, Path]) -> bool:
    """Remove the descriptor file. Returns False if it was already absent."""
    path = Path(path)
    if not path.exists():
        return False

    path.unlink()
    logger.info("Backend configuration removed", path=str(path))
    return True


def _parse_attributes(text: str) -> Dict[str, Union[str, bool]]:
    attributes: Dict[str, Union[str, bool]] = {}

    for raw in text.splitlines():
        line = _strip_comment(raw)
        match = _ASSIGNMENT.match(line)
        if not match:
            continue

        name, value = match.groups()
        attributes[name] = _parse_value(value)

    return attributes


def _strip_comment(line: str) -> str:
    in_string = False
    escaped = False
    for i, ch in enumerate(line):
        if escaped:
            escaped = False
        elif ch == "\\" and in_string:
            escaped = True
        elif ch == '"':
            in_string = not in_string
        elif not in_string and (ch == "#" or line.startswith("//", i)):
            return line[:i]
    return line


def _parse_value(value: str) -> Union[str, bool]:
    quoted = _QUOTED.match(value)
    if quoted:
        return re.sub(r"\\(.)", r"\1", quoted.group(1))
    if value == "true":
        return True
    if value == "false":
        return False
    return value


def _format_value(value: Union[str, bool]) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return f'"{value}"'
