"""Grammar manifest loading.

The manifest is a JSON document with a ``grammars`` array::

    {
      "grammars": [
        {"name": "json", "repo": "https://github.com/tree-sitter/tree-sitter-json",
         "rev": "46aa487b3ade14b7b05ef92507fdaa3915a662a3"},
        {"name": "typescript", "repo": "tree-sitter/tree-sitter-typescript",
         "rev": "75b3874e...", "path": "typescript"}
      ]
    }

``load_manifest`` validates every entry into a frozen :class:`GrammarSpec`
and fails fast on the first problem. There is no partial-manifest mode: a
missing file, invalid JSON, a schema violation or a duplicate name raises
``ManifestError`` naming the offending field.

Tags:
    manifest, grammars, pydantic, validation
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tsforge.core.errors import ManifestError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)

_GITHUB_SHORTHAND = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]")


class GrammarSpec(BaseModel):
    """One grammar entry from the manifest.

    ``name`` is the join key for every later stage: cache directory,
    single-grammar archive, symbol prefix and platform manifest rows.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    rev: str | None = None
    branch: str | None = None
    path: str | None = None
    symbol_name: str | None = None

    @field_validator("name")
    @classmethod
    def _lowercase_name(cls, value: str) -> str:
        if value != value.lower():
            raise ValueError("must be lowercase")
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError("must not contain path separators")
        return value

    @field_validator("rev", "branch", "path", "symbol_name")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def repo_url(self) -> str:
        """Clone URL; ``owner/repo`` shorthand expands to GitHub."""
        if self.repo.startswith(("http://", "https://", "git@", "ssh://", "file://", "/")):
            return self.repo
        if _GITHUB_SHORTHAND.match(self.repo):
            return f"https://github.com/{self.repo}"
        return self.repo

    @property
    def symbol_prefix(self) -> str:
        """C identifier fragment used to rename colliding symbols."""
        return _NON_IDENTIFIER.sub("_", self.symbol_name or self.name)

    def to_manifest_entry(self) -> dict[str, Any]:
        """Serialize with manifest field names, omitting unset optionals."""
        return self.model_dump(exclude_none=True)


def load_manifest(path: Path | str) -> list[GrammarSpec]:
    """Load and validate the grammar manifest.

    Raises
    ------
    ManifestError
        File missing or unreadable, JSON invalid, schema violated, or
        names or symbol prefixes duplicated.
    """
    path = Path(path)
    if not path.is_file():
        raise ManifestError(f"Manifest not found: {path}")

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest {path} is not valid JSON: {exc}", cause=exc) from exc
    except UnicodeDecodeError as exc:
        raise ManifestError(f"Manifest {path} is not valid UTF-8: {exc}", cause=exc) from exc
    except OSError as exc:
        raise ManifestError(f"Manifest {path} could not be read: {exc}", cause=exc) from exc

    return parse_manifest(document, source=str(path))


def parse_manifest(document: Any, source: str = "<manifest>") -> list[GrammarSpec]:
    """Validate an already-decoded manifest document."""
    if not isinstance(document, dict) or "grammars" not in document:
        raise ManifestError(f"{source}: missing 'grammars' array", field_path="grammars")

    entries = document["grammars"]
    if not isinstance(entries, list):
        raise ManifestError(f"{source}: 'grammars' must be an array", field_path="grammars")

    specs: list[GrammarSpec] = []
    seen: set[str] = set()
    prefixes: dict[str, str] = {}
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ManifestError(
                f"{source}: grammars[{index}] must be an object",
                field_path=f"grammars[{index}]",
            )
        if not entry.get("rev"):
            raise ManifestError(
                f"{source}: grammars[{index}].rev is required",
                field_path=f"grammars[{index}].rev",
            )
        try:
            spec = GrammarSpec.model_validate(entry)
        except ValidationError as exc:
            first = exc.errors()[0]
            loc = ".".join(str(part) for part in first["loc"]) or "?"
            field_path = f"grammars[{index}].{loc}"
            raise ManifestError(
                f"{source}: {field_path}: {first['msg']}",
                field_path=field_path,
                cause=exc,
            ) from exc

        if spec.name in seen:
            raise ManifestError(
                f"{source}: grammars[{index}].name duplicates {spec.name!r}",
                field_path=f"grammars[{index}].name",
            )
        seen.add(spec.name)

        # Renamed symbols are only unique if prefixes are
        owner = prefixes.get(spec.symbol_prefix)
        if owner is not None:
            field = "symbol_name" if spec.symbol_name else "name"
            raise ManifestError(
                f"{source}: grammars[{index}].{field} gives symbol prefix "
                f"{spec.symbol_prefix!r}, already used by {owner!r}",
                field_path=f"grammars[{index}].{field}",
            )
        prefixes[spec.symbol_prefix] = spec.name
        specs.append(spec)

    logger.info("manifest.loaded", source=source, grammars=len(specs))
    return specs
