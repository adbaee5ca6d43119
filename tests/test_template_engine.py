"""Tests for placeholder substitution and scaffold writing."""

import pytest

from devkit.errors import TemplateApplyError
from devkit.templates.engine import (
    apply_template,
    extract_variables,
    missing_variables,
    process_template,
    to_pascal_case,
)


class TestProcessTemplate:
    """Tests for process_template."""

    def test_replaces_known_identifiers(self):
        """Every occurrence of a known identifier is replaced."""
        result = process_template("{{name}} v{{version}} by {{name}}", {"name": "stats", "version": "1.0.0"})
        assert result == "stats v1.0.0 by stats"

    def test_tolerates_whitespace_inside_braces(self):
        """Spaces inside the braces are allowed."""
        assert process_template("class {{ className }}:", {"className": "Stats"}) == "class Stats:"

    def test_unknown_identifiers_left_untouched(self):
        """Identifiers with no value survive for a later pass."""
        assert process_template("{{name}}-{{later}}", {"name": "a"}) == "a-{{later}}"

    def test_values_are_stringified(self):
        """Non-string values use their string form."""
        assert process_template("port={{port}} debug={{debug}}", {"port": 25565, "debug": False}) == \
            "port=25565 debug=False"

    def test_idempotent_once_fully_substituted(self):
        """Substituting an already substituted string changes nothing."""
        variables = {"name": "stats", "author": "x"}
        once = process_template("{{name}} by {{ author }}", variables)
        assert process_template(once, variables) == once

    def test_single_braces_are_not_placeholders(self):
        """Python dict literals and format strings pass through."""
        content = 'data = {"a": 1}\nf"{value}"'
        assert process_template(content, {"a": "x", "value": "y"}) == content


class TestExtractVariables:
    """Tests for extract_variables."""

    def test_first_seen_order_without_duplicates(self):
        """Identifiers come back once each, in order of first appearance."""
        content = "{{b}} {{a}} {{ b }} {{c}} {{a}}"
        assert extract_variables(content) == ["b", "a", "c"]

    def test_no_placeholders(self):
        assert extract_variables("plain text") == []

    def test_missing_variables_scans_paths_and_contents(self):
        """Identifiers in file paths count as well as in contents."""
        files = {"components/{{componentName}}.js": "{{name}}", "README.md": "{{ description }}"}
        assert missing_variables(files, {"name": "x"}) == ["componentName", "description"]


class TestPascalCase:
    """Tests for the derived class-name rule."""

    @pytest.mark.parametrize("name,expected", [
        ("stat-tracker", "StatTracker"),
        ("my_cool_plugin", "MyCoolPlugin"),
        ("server stats", "ServerStats"),
        ("already", "Already"),
        ("a--b__c", "ABC"),
    ])
    def test_conversion(self, name, expected):
        assert to_pascal_case(name) == expected


class TestApplyTemplate:
    """Tests for writing a scaffold to disk."""

    def test_substitutes_paths_and_contents(self, tmp_path):
        """Output paths and file contents both go through substitution."""
        files = {
            "{{name}}.txt": "hello {{name}}",
            "nested/dir/{{className}}.py": "class {{className}}: pass",
        }
        written = apply_template(files, {"name": "stats", "className": "Stats"}, tmp_path)

        assert written == [tmp_path / "stats.txt", tmp_path / "nested/dir/Stats.py"]
        assert (tmp_path / "stats.txt").read_text() == "hello stats"
        assert (tmp_path / "nested" / "dir" / "Stats.py").read_text() == "class Stats: pass"

    def test_rejects_paths_escaping_output_dir(self, tmp_path):
        """A substituted path may not climb out of the output directory."""
        out = tmp_path / "out"
        with pytest.raises(TemplateApplyError) as exc_info:
            apply_template({"{{dest}}/evil.txt": "x"}, {"dest": ".."}, out)
        assert exc_info.value.written == []
        assert not (tmp_path / "evil.txt").exists()

    def test_write_failure_reports_partial_output(self, tmp_path):
        """Files written before a failure are listed on the error and remain on disk."""
        (tmp_path / "blocker").write_text("a file, not a directory")
        files = {
            "first.txt": "1",
            "blocker/second.txt": "2",
            "third.txt": "3",
        }
        with pytest.raises(TemplateApplyError) as exc_info:
            apply_template(files, {}, tmp_path)

        error = exc_info.value
        assert error.written == [tmp_path / "first.txt"]
        assert error.path == tmp_path / "blocker" / "second.txt"
        assert (tmp_path / "first.txt").exists()
        assert not (tmp_path / "third.txt").exists()
        assert "1 file(s) already written" in str(error)
