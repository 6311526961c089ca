#!/usr/bin/env python3
"""Tests for package discovery, SKILL.md loading and header parsing."""

from pathlib import Path

import pytest
from skill_document import (
    Document,
    DocumentUnavailable,
    extract_section,
    load_document,
    locate_packages,
    parse_header,
)
from skill_validation_common import Package


class TestParseHeader:
    """Header block detection and YAML parsing."""

    def test_missing_marker(self) -> None:
        """Content without a leading '---' has no header."""
        content = "# Title\n\nname: not-a-header\n"
        fields, body, status = parse_header(content)
        assert fields is None
        assert body == content
        assert status == "missing"

    def test_unclosed_block_is_malformed(self) -> None:
        fields, body, status = parse_header("---\nname: demo\ndescription: x\n")
        assert fields is None
        assert status == "malformed"

    def test_invalid_yaml_is_malformed(self) -> None:
        _fields, _body, status = parse_header("---\nname: [unclosed\n---\n# Title\n")
        assert status == "malformed"

    def test_non_mapping_is_malformed(self) -> None:
        _fields, _body, status = parse_header("---\n- one\n- two\n---\n")
        assert status == "malformed"

    def test_empty_block_is_empty_map(self) -> None:
        fields, body, status = parse_header("---\n---\nbody text\n")
        assert status == "ok"
        assert fields == {}
        assert body == "body text\n"

    def test_body_follows_closing_marker(self) -> None:
        fields, body, status = parse_header("---\nname: demo\n---\n# Demo\n\nText\n")
        assert status == "ok"
        assert fields == {"name": "demo"}
        assert body == "# Demo\n\nText\n"

    def test_empty_value_is_empty_string(self) -> None:
        """An empty value is present, not absent."""
        fields, _body, _status = parse_header("---\nname: demo\ndescription:\n---\n")
        assert fields is not None
        assert "description" in fields
        assert fields["description"] == ""

    def test_duplicate_keys_last_wins(self) -> None:
        """Duplicate keys silently resolve to the last occurrence (no error raised)."""
        fields, _body, status = parse_header("---\nname: first\nname: second\n---\n")
        assert status == "ok"
        assert fields == {"name": "second"}

    def test_values_normalized_to_strings(self) -> None:
        content = "---\nallowed-tools: [Read, Grep]\nuser-invocable: true\nversion: 2\nmeta:\n  b: 1\n  a: x\n---\n"
        fields, _body, _status = parse_header(content)
        assert fields == {
            "allowed-tools": "Read, Grep",
            "user-invocable": "true",
            "version": "2",
            "meta": '{"a": "x", "b": "1"}',
        }

    @pytest.mark.parametrize("value", ["no", "yes", "on", "off", "true", "null", "1e3", "0777"])
    def test_scalars_kept_as_written(self, value: str) -> None:
        """YAML 1.1 booleans, nulls and numbers are not converted."""
        fields, _body, status = parse_header(f"---\nname: {value}\n---\n")
        assert status == "ok"
        assert fields == {"name": value}

    def test_key_order_preserved(self) -> None:
        fields, _body, _status = parse_header("---\nzeta: 1\nalpha: 2\nmid: 3\n---\n")
        assert fields is not None
        assert list(fields) == ["zeta", "alpha", "mid"]


class TestDocument:
    def test_body_line_offset_counts_header_lines(self) -> None:
        document = Document.parse("---\nname: demo\ndescription: x\n---\nA\nB\n")
        assert document.body_line_offset == 4

    def test_offset_without_header_is_zero(self) -> None:
        assert Document.parse("A\nB\n").body_line_offset == 0


class TestLocatePackages:
    """Package discovery under a skills root."""

    def test_sorted_and_filtered(self, tmp_path: Path) -> None:
        for name in ("zeta", "alpha", "mid", ".hidden", "__pycache__"):
            (tmp_path / name).mkdir()
        (tmp_path / "notes.txt").write_text("not a package")

        packages = locate_packages(tmp_path)

        assert [p.name for p in packages] == ["alpha", "mid", "zeta"]
        assert packages[0].root_path == tmp_path / "alpha"

    def test_empty_root(self, tmp_path: Path) -> None:
        assert locate_packages(tmp_path) == []


class TestLoadDocument:
    """Loader converts absent or unreadable files into DocumentUnavailable."""

    def test_missing_document(self, tmp_path: Path) -> None:
        (tmp_path / "demo").mkdir()
        with pytest.raises(DocumentUnavailable, match="not found"):
            load_document(Package("demo", tmp_path / "demo"))

    def test_invalid_utf8(self, tmp_path: Path) -> None:
        skill_dir = tmp_path / "demo"
        skill_dir.mkdir()
        (skill_dir / "SKILL.md").write_bytes(b"---\nname: demo\n---\n\xff\xfe\xfa broken\n")
        with pytest.raises(DocumentUnavailable, match="UTF-8"):
            load_document(Package("demo", skill_dir))

    def test_directory_named_like_document(self, tmp_path: Path) -> None:
        (tmp_path / "demo" / "SKILL.md").mkdir(parents=True)
        with pytest.raises(DocumentUnavailable):
            load_document(Package("demo", tmp_path / "demo"))

    def test_loads_and_parses(self, tmp_path: Path) -> None:
        skill_dir = tmp_path / "demo"
        skill_dir.mkdir()
        (skill_dir / "SKILL.md").write_text("---\nname: demo\n---\n# Demo\n")
        document = load_document(Package("demo", skill_dir))
        assert document.header_status == "ok"
        assert document.header_fields == {"name": "demo"}
        assert document.body == "# Demo\n"


class TestExtractSection:
    """Section text runs to the next heading of the same or higher level."""

    BODY = (
        "# Title\n"
        "## Workflow\n"
        "1. First\n"
        "### Details\n"
        "```bash\n"
        "## Not a heading\n"
        "```\n"
        "2. Second\n"
        "## Guides\n"
        "- guide\n"
    )

    def test_section_includes_subheadings_and_code(self) -> None:
        section = extract_section(self.BODY, "Workflow")
        assert section is not None
        assert section.splitlines() == [
            "1. First",
            "### Details",
            "```bash",
            "## Not a heading",
            "```",
            "2. Second",
        ]

    def test_last_section_runs_to_end(self) -> None:
        assert extract_section(self.BODY, "Guides") == "- guide"

    def test_absent_section(self) -> None:
        assert extract_section(self.BODY, "Checklist") is None

    def test_heading_inside_code_block_ignored(self) -> None:
        body = "```\n## Checklist\n```\n"
        assert extract_section(body, "Checklist") is None
