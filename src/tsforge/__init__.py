"""
tsforge - multi-platform build orchestrator for tree-sitter grammars.

Fetches grammar repositories pinned in a manifest, compiles each one for
up to eight (OS, architecture, libc) targets with symbol-renaming defines,
and merges the results into one static archive per platform alongside a
JSON sidecar listing the included grammars.
"""

__version__ = "0.1.5"
