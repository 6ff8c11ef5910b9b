"""Cache inspection.

Read-only report of what state every manifest grammar is in inside the
fetch cache, so problems can be spotted before a long compile run.

    ┌──────────────────┬──────────────────────────────────────────────┐
    │ state            │ meaning                                      │
    ├──────────────────┼──────────────────────────────────────────────┤
    │ ready            │ src/parser.c present                         │
    │ needs-generation │ no parser.c, grammar.js present              │
    │ incomplete       │ checkout holds nothing but .git              │
    │ broken           │ no parser.c and no grammar.js                │
    │ missing          │ no checkout directory at all                 │
    └──────────────────┴──────────────────────────────────────────────┘

Tags:
    cache, inspection, status, generation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from tsforge.build.fetcher import VCS_DIR
from tsforge.build.generator import GRAMMAR_DEFINITION, PARSER_SOURCE
from tsforge.build.manifest import GrammarSpec


class CacheState(str, Enum):
    READY = "ready"
    NEEDS_GENERATION = "needs-generation"
    INCOMPLETE = "incomplete"
    BROKEN = "broken"
    MISSING = "missing"


STATE_TITLES = {
    CacheState.READY: "OK (has src/parser.c)",
    CacheState.NEEDS_GENERATION: "Needs generation (has grammar.js)",
    CacheState.INCOMPLETE: "Incomplete checkout (only .git)",
    CacheState.BROKEN: "Broken (no src/parser.c and no grammar.js)",
    CacheState.MISSING: "Missing checkout",
}


@dataclass(frozen=True)
class GrammarStatus:
    name: str
    state: CacheState
    path: Path


@dataclass
class CacheReport:
    """Per-grammar states, in manifest order."""

    statuses: list[GrammarStatus] = field(default_factory=list)

    def names(self, state: CacheState) -> list[str]:
        return [s.name for s in self.statuses if s.state is state]

    def counts(self) -> dict[CacheState, int]:
        return {state: len(self.names(state)) for state in CacheState}

    @property
    def total(self) -> int:
        return len(self.statuses)


def inspect_grammar(spec: GrammarSpec, cache_dir: Path) -> GrammarStatus:
    """Classify one grammar's checkout."""
    repo_dir = Path(cache_dir) / spec.name
    base_dir = repo_dir / spec.path if spec.path else repo_dir

    if not repo_dir.is_dir():
        state = CacheState.MISSING
    elif (base_dir / "src" / PARSER_SOURCE).is_file():
        state = CacheState.READY
    elif (base_dir / GRAMMAR_DEFINITION).is_file():
        state = CacheState.NEEDS_GENERATION
    else:
        entries = [entry.name for entry in repo_dir.iterdir()]
        if entries and all(name == VCS_DIR for name in entries):
            state = CacheState.INCOMPLETE
        else:
            state = CacheState.BROKEN
    return GrammarStatus(name=spec.name, state=state, path=base_dir)


def inspect_cache(grammars: list[GrammarSpec], cache_dir: Path) -> CacheReport:
    return CacheReport(statuses=[inspect_grammar(spec, cache_dir) for spec in grammars])
