"""Parser source generation.

Some grammar repositories ship only ``grammar.js`` and expect
``src/parser.c`` to be generated by the tree-sitter CLI. ``ParserGenerator``
produces it on demand by trying an ordered list of invocation strategies.
The first one that leaves a ``parser.c`` behind wins, and every failure
is folded into one diagnostic.

Generation is deterministic, so it runs at most once per grammar per
run. The outcome is memoised by grammar name, and later platform passes
reuse it even when the first attempt failed.

Tags:
    generation, tree-sitter, parser, strategies
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

from tsforge.build.commands import CommandRunner
from tsforge.core.errors import CommandError, GenerationError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)

PARSER_SOURCE = "parser.c"
GRAMMAR_DEFINITION = "grammar.js"


@dataclass(frozen=True)
class GeneratorStrategy:
    """One way of invoking the tree-sitter generator."""

    label: str
    args: tuple[str, ...]


DEFAULT_STRATEGIES: tuple[GeneratorStrategy, ...] = (
    GeneratorStrategy("npx", ("npx", "tree-sitter", "generate")),
    GeneratorStrategy("tree-sitter", ("tree-sitter", "generate")),
)


class ParserGenerator:
    """Generates ``src/parser.c`` from ``grammar.js``, once per grammar.

    Parameters
    ----------
    runner
        External command runner.
    strategies
        Invocation strategies, tried in order.
    timeout
        Seconds before a single generator invocation is killed.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        strategies: tuple[GeneratorStrategy, ...] = DEFAULT_STRATEGIES,
        timeout: float | None = None,
    ) -> None:
        self.runner = runner or CommandRunner()
        self.strategies = strategies
        self.timeout = timeout
        self._lock = threading.Lock()
        self._name_locks: dict[str, threading.Lock] = {}
        self._outcomes: dict[str, GenerationError | None] = {}

    def ensure_parser(self, name: str, base_dir: Path, src_dir: Path) -> Path:
        """Return the path to ``parser.c``, generating it if needed.

        Raises
        ------
        GenerationError
            No ``grammar.js`` to generate from, or every strategy failed.
        """
        parser_c = src_dir / PARSER_SOURCE
        if parser_c.is_file():
            return parser_c

        with self._lock_for(name):
            if name in self._outcomes:
                previous = self._outcomes[name]
                if previous is not None:
                    raise previous
                if parser_c.is_file():
                    return parser_c

            error: GenerationError | None = None
            try:
                self._generate(name, base_dir, parser_c)
            except GenerationError as exc:
                error = exc
            self._outcomes[name] = error
            if error is not None:
                raise error
            return parser_c

    def _lock_for(self, name: str) -> threading.Lock:
        with self._lock:
            return self._name_locks.setdefault(name, threading.Lock())

    def _generate(self, name: str, base_dir: Path, parser_c: Path) -> None:
        if not (base_dir / GRAMMAR_DEFINITION).is_file():
            raise GenerationError(f"{name} - no {PARSER_SOURCE}").with_context(grammar=name)

        failures: list[str] = []
        for strategy in self.strategies:
            logger.info("generate.attempt", grammar=name, strategy=strategy.label)
            try:
                self.runner.run(list(strategy.args), cwd=base_dir, timeout=self.timeout)
            except CommandError as exc:
                failures.append(f"{strategy.label}: {exc.output.strip()}")
                continue
            if parser_c.is_file():
                logger.info("generate.succeeded", grammar=name, strategy=strategy.label)
                return
            failures.append(f"{strategy.label}: finished without producing {PARSER_SOURCE}")

        logger.error("generate.failed", grammar=name, attempts=len(failures))
        raise GenerationError(
            f"{name} - no {PARSER_SOURCE} and can't generate (install tree-sitter-cli)\n"
            + "\n".join(failures)
        ).with_context(grammar=name)
