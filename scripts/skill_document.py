#!/usr/bin/env python3
"""
Skill Audit - Package Locator, Document Loader and Header Parser

Discovers skill directories under a root, loads each skill's SKILL.md and
splits it into a YAML header block and a markdown body.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from skill_rules import SECTIONS_BY_LABEL, mask_code_blocks
from skill_validation_common import SKIP_DIRS, Package

HeaderStatus = Literal["ok", "missing", "malformed"]

HEADER_MARKER = "---"

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Document:
    """Loaded SKILL.md content.

    Attributes:
        raw_text: Full file content
        header_fields: Ordered header map, or None if the header is missing/malformed
        body: Text after the header block (whole text when there is no valid header)
        header_status: ok, missing or malformed
    """

    raw_text: str
    header_fields: dict[str, str] | None
    body: str
    header_status: HeaderStatus

    @classmethod
    def parse(cls, raw_text: str) -> Document:
        header_fields, body, status = parse_header(raw_text)
        return cls(raw_text=raw_text, header_fields=header_fields, body=body, header_status=status)

    @property
    def body_line_offset(self) -> int:
        """Lines preceding the body in the file (the header block)."""
        return len(self.raw_text.splitlines()) - len(self.body.splitlines())


class DocumentUnavailable(Exception):
    """SKILL.md is absent or cannot be read as UTF-8 text."""


# =============================================================================
# Package Locator
# =============================================================================


def locate_packages(root: Path) -> list[Package]:
    """Enumerate candidate skill directories under root, sorted by name.

    Hidden directories and cache directories are skipped.
    """
    packages = []
    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if not child.is_dir():
            continue
        if child.name.startswith(".") or child.name in SKIP_DIRS:
            continue
        packages.append(Package.from_path(child))
    return packages


# =============================================================================
# Document Loader
# =============================================================================


def load_document(package: Package) -> Document:
    """Read and parse a package's SKILL.md.

    Raises:
        DocumentUnavailable: if the file is missing or unreadable
    """
    path = package.document_path
    if not os.path.isfile(path):
        raise DocumentUnavailable(f"{path.name} not found")
    try:
        raw_text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DocumentUnavailable(f"{path.name} is not valid UTF-8 ({e.reason})") from e
    except OSError as e:
        raise DocumentUnavailable(f"{path.name} could not be read ({e.strerror or type(e).__name__})") from e
    return Document.parse(raw_text)


# =============================================================================
# Header Parser
# =============================================================================


def _as_string(value: Any) -> str:
    """Normalize a YAML value to the string stored in the header map."""
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(_as_string(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def parse_header(content: str) -> tuple[dict[str, str] | None, str, HeaderStatus]:
    """Parse the YAML header block from SKILL.md content.

    The block starts on the first line with '---' and ends at the next line
    consisting of '---'. Duplicate keys resolve to the last occurrence.
    Scalars are kept exactly as written: BaseLoader applies no type
    resolution, so 'name: no' stays the string 'no' rather than False.

    Returns:
        Tuple of (header_fields, body, status).
        Returns (None, content, status) if the header is missing or malformed.
    """
    lines = content.splitlines(keepends=True)
    if not lines or lines[0].strip() != HEADER_MARKER:
        return None, content, "missing"

    # Find closing ---
    closing = None
    for index in range(1, len(lines)):
        if lines[index].strip() == HEADER_MARKER:
            closing = index
            break
    if closing is None:
        return None, content, "malformed"

    try:
        parsed = yaml.load("".join(lines[1:closing]), Loader=yaml.BaseLoader)
    except yaml.YAMLError:
        return None, content, "malformed"

    if parsed is None:
        parsed = {}
    if not isinstance(parsed, dict):
        return None, content, "malformed"

    fields = {str(key): _as_string(value) for key, value in parsed.items()}
    body = "".join(lines[closing + 1 :])
    return fields, body, "ok"


# =============================================================================
# Body Helpers
# =============================================================================

_ANY_HEADING = re.compile(r"^(#{1,6})[ \t]+\S", re.MULTILINE)


def find_heading(body: str, pattern: re.Pattern[str]) -> re.Match[str] | None:
    """Find a heading outside fenced code blocks."""
    return pattern.search(mask_code_blocks(body))


def extract_section(body: str, label: str) -> str | None:
    """Return the text of a required section, heading excluded.

    The section runs until the next heading of the same or a higher level.
    Returns None if the section heading is absent.
    """
    masked = mask_code_blocks(body)
    match = SECTIONS_BY_LABEL[label].pattern.search(masked)
    if match is None:
        return None
    level = len(match.group(1))
    end = len(masked)
    for heading in _ANY_HEADING.finditer(masked, match.end()):
        if len(heading.group(1)) <= level:
            end = heading.start()
            break
    # Slice the original body so code blocks inside the section are preserved
    return _slice_lines(body, masked, match.end(), end)


def _slice_lines(body: str, masked: str, start: int, end: int) -> str:
    # Masking keeps line boundaries, so map offsets through line numbers
    first_line = masked.count("\n", 0, start)
    last_line = masked.count("\n", 0, end)
    lines = body.splitlines()
    return "\n".join(lines[first_line + 1 : last_line + 1 if end == len(masked) else last_line])
