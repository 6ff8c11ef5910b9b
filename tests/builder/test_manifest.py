"""Tests for manifest loading and GrammarSpec."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tsforge.build.manifest import GrammarSpec, load_manifest, parse_manifest
from tsforge.core.errors import ErrorCategory, ManifestError


class TestGrammarSpec:
    """Tests for GrammarSpec model."""

    def test_minimal(self):
        spec = GrammarSpec(name="json", repo="tree-sitter/tree-sitter-json", rev="abc123")
        assert spec.branch is None
        assert spec.path is None
        assert spec.symbol_name is None

    def test_frozen(self):
        spec = GrammarSpec(name="json", repo="x/y", rev="abc")
        with pytest.raises(ValidationError):
            spec.name = "other"

    def test_shorthand_expands_to_github(self):
        spec = GrammarSpec(name="json", repo="tree-sitter/tree-sitter-json", rev="abc")
        assert spec.repo_url == "https://github.com/tree-sitter/tree-sitter-json"

    @pytest.mark.parametrize(
        "repo",
        [
            "https://gitlab.com/foo/tree-sitter-bar",
            "git@github.com:foo/bar.git",
            "file:///srv/git/bar",
            "/srv/git/bar",
        ],
    )
    def test_full_urls_pass_through(self, repo):
        spec = GrammarSpec(name="bar", repo=repo, rev="abc")
        assert spec.repo_url == repo

    def test_uppercase_name_rejected(self):
        with pytest.raises(ValidationError):
            GrammarSpec(name="JSON", repo="x/y", rev="abc")

    def test_path_separator_in_name_rejected(self):
        with pytest.raises(ValidationError):
            GrammarSpec(name="a/b", repo="x/y", rev="abc")

    def test_blank_optionals_become_none(self):
        spec = GrammarSpec(name="json", repo="x/y", rev="abc", branch="  ", path="")
        assert spec.branch is None
        assert spec.path is None

    def test_symbol_prefix_defaults_to_name(self):
        assert GrammarSpec(name="c_sharp", repo="x/y", rev="a").symbol_prefix == "c_sharp"

    def test_symbol_prefix_sanitised(self):
        spec = GrammarSpec(name="objective-c", repo="x/y", rev="a")
        assert spec.symbol_prefix == "objective_c"

    def test_symbol_name_override(self):
        spec = GrammarSpec(name="typescript-tsx", repo="x/y", rev="a", symbol_name="tsx")
        assert spec.symbol_prefix == "tsx"

    def test_manifest_entry_omits_unset(self):
        spec = GrammarSpec(name="json", repo="x/y", rev="abc", path="json")
        assert spec.to_manifest_entry() == {"name": "json", "repo": "x/y", "rev": "abc", "path": "json"}

    def test_extra_keys_ignored(self):
        spec = GrammarSpec.model_validate({"name": "json", "repo": "x/y", "rev": "a", "stars": 12})
        assert "stars" not in spec.to_manifest_entry()


class TestLoadManifest:
    """Tests for load_manifest / parse_manifest."""

    def test_loads_entries_in_order(self, write_manifest):
        path = write_manifest(
            [
                {"name": "json", "repo": "tree-sitter/tree-sitter-json", "rev": "aaa"},
                {"name": "c", "repo": "tree-sitter/tree-sitter-c", "rev": "bbb", "branch": "next"},
            ]
        )
        specs = load_manifest(path)
        assert [s.name for s in specs] == ["json", "c"]
        assert specs[1].branch == "next"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match="not found"):
            load_manifest(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "grammars.json"
        path.write_text("{not json")
        with pytest.raises(ManifestError, match="not valid JSON") as exc_info:
            load_manifest(path)
        assert exc_info.value.category == ErrorCategory.MANIFEST

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "grammars.json"
        path.write_bytes(b'{"grammars": [{"name": "a\xff", "repo": "x/a", "rev": "a"}]}')
        with pytest.raises(ManifestError, match="not valid UTF-8") as exc_info:
            load_manifest(path)
        assert isinstance(exc_info.value.cause, UnicodeDecodeError)

    def test_unreadable_file(self, write_manifest):
        path = write_manifest([])
        with patch.object(Path, "read_text", side_effect=PermissionError("denied")):
            with pytest.raises(ManifestError, match="could not be read"):
                load_manifest(path)

    def test_missing_grammars_key(self):
        with pytest.raises(ManifestError) as exc_info:
            parse_manifest({"parsers": []})
        assert exc_info.value.field_path == "grammars"

    def test_grammars_not_a_list(self):
        with pytest.raises(ManifestError, match="must be an array"):
            parse_manifest({"grammars": {"json": {}}})

    def test_entry_not_an_object(self):
        with pytest.raises(ManifestError) as exc_info:
            parse_manifest({"grammars": ["json"]})
        assert exc_info.value.field_path == "grammars[0]"

    def test_missing_rev_names_field(self):
        document = {
            "grammars": [
                {"name": "json", "repo": "x/json", "rev": "a"},
                {"name": "c", "repo": "x/c", "rev": "b"},
                {"name": "go", "repo": "x/go", "rev": "c"},
                {"name": "rust", "repo": "x/rust"},
            ]
        }
        with pytest.raises(ManifestError) as exc_info:
            parse_manifest(document)
        assert exc_info.value.field_path == "grammars[3].rev"
        assert "grammars[3].rev" in str(exc_info.value)

    def test_missing_repo_names_field(self):
        with pytest.raises(ManifestError) as exc_info:
            parse_manifest({"grammars": [{"name": "json", "rev": "a"}]})
        assert exc_info.value.field_path == "grammars[0].repo"

    def test_duplicate_names(self):
        document = {
            "grammars": [
                {"name": "json", "repo": "x/json", "rev": "a"},
                {"name": "json", "repo": "y/json", "rev": "b"},
            ]
        }
        with pytest.raises(ManifestError, match="duplicates") as exc_info:
            parse_manifest(document)
        assert exc_info.value.field_path == "grammars[1].name"

    def test_colliding_symbol_prefixes(self):
        document = {
            "grammars": [
                {"name": "a-b", "repo": "x/a-b", "rev": "a"},
                {"name": "a_b", "repo": "x/a_b", "rev": "b"},
            ]
        }
        with pytest.raises(ManifestError, match="symbol prefix 'a_b'") as exc_info:
            parse_manifest(document)
        assert exc_info.value.field_path == "grammars[1].name"

    def test_symbol_name_collides_with_other_grammar(self):
        document = {
            "grammars": [
                {"name": "tsx", "repo": "x/tsx", "rev": "a"},
                {"name": "typescript-tsx", "repo": "x/ts", "rev": "b", "symbol_name": "tsx"},
            ]
        }
        with pytest.raises(ManifestError) as exc_info:
            parse_manifest(document)
        assert exc_info.value.field_path == "grammars[1].symbol_name"

    def test_empty_manifest(self, write_manifest):
        assert load_manifest(write_manifest([])) == []

    def test_error_serialises_field(self, tmp_path):
        path = tmp_path / "grammars.json"
        path.write_text(json.dumps({"grammars": [{"name": "json", "repo": "x/y"}]}))
        with pytest.raises(ManifestError) as exc_info:
            load_manifest(path)
        payload = exc_info.value.to_dict()
        assert payload["category"] == "MANIFEST"
        assert payload["context"]["field"] == "grammars[0].rev"
