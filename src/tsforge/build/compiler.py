"""Per-grammar compilation.

``GrammarCompiler.compile`` turns one fetched grammar into one static
archive for one platform::

    cache/<name>[/<path>]/src/parser.c   ──┐
    cache/<name>[/<path>]/src/scanner.*  ──┤  cc / c++ / zig cc -target T
                                           ▼
    <platform_dir>/<name>_parser.o, <name>_scanner.o
                                           │  ar rcs
                                           ▼
    <platform_dir>/libtree-sitter-parsers-<name>.a   (+ <name>.cpp marker)

Every grammar's external scanner defines the same handful of helper
symbols (``scan``, ``serialize``...). They are renamed per grammar with
preprocessor defines so hundreds of grammars can share one archive
without duplicate-symbol errors at link time.

Failures are returned as ``CompileResult(success=False)`` carrying the
full command line and the compiler output. Nothing is raised to the
caller, and no object files are left behind.

Key Concepts:
    RENAMED_SYMBOLS: helper symbols that get a ``ts_<prefix>_`` prefix.
    COMPILE_FLAGS: optimisation and visibility flags shared by every unit.
    find_scanner(): ``scanner.cc`` > ``scanner.cpp`` > ``scanner.c``.

Tags:
    compile, archive, symbols, zig, tree-sitter
"""

from __future__ import annotations

from pathlib import Path

from tsforge.build.commands import CommandRunner
from tsforge.build.generator import ParserGenerator
from tsforge.build.manifest import GrammarSpec
from tsforge.build.results import CompileResult
from tsforge.build.toolchain import Toolchain, is_cpp_source
from tsforge.core.errors import CommandError, GenerationError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)

RENAMED_SYMBOLS = ("string_new", "scan_comment", "serialize", "deserialize", "scan")

COMPILE_FLAGS = (
    "-fPIC",
    "-fno-exceptions",
    "-funroll-loops",
    "-fomit-frame-pointer",
    "-ffast-math",
    "-finline-functions",
    "-ffunction-sections",
    "-fdata-sections",
    "-fvisibility=hidden",
)

C_STANDARD = "-std=gnu11"
CXX_STANDARD = "-std=c++14"

# Priority order; the first match is the only scanner compiled
SCANNER_CANDIDATES = ("scanner.cc", "scanner.cpp", "scanner.c")


def archive_name(name: str) -> str:
    return f"libtree-sitter-parsers-{name}.a"


def cpp_marker_name(name: str) -> str:
    return f"{name}.cpp"


def rename_defines(prefix: str) -> list[str]:
    """``-D<sym>=ts_<prefix>_<sym>`` for each renamed helper symbol."""
    return [f"-D{symbol}=ts_{prefix}_{symbol}" for symbol in RENAMED_SYMBOLS]


def find_scanner(src_dir: Path) -> Path | None:
    for candidate in SCANNER_CANDIDATES:
        path = src_dir / candidate
        if path.is_file():
            return path
    return None


class GrammarCompiler:
    """Compiles fetched grammars into single-grammar archives.

    Parameters
    ----------
    cache_dir
        Fetch cache root (``cache_dir / name`` is a checkout).
    runner
        External command runner.
    generator
        Parser generator, shared across platforms so generation happens
        once per grammar.
    compile_timeout
        Seconds before one compiler or archiver invocation is killed.
    """

    def __init__(
        self,
        cache_dir: Path,
        runner: CommandRunner | None = None,
        generator: ParserGenerator | None = None,
        compile_timeout: float | None = 1800.0,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.runner = runner or CommandRunner()
        self.generator = generator or ParserGenerator(self.runner)
        self.compile_timeout = compile_timeout

    def base_dir(self, spec: GrammarSpec) -> Path:
        root = self.cache_dir / spec.name
        return root / spec.path if spec.path else root

    def compile(self, spec: GrammarSpec, toolchain: Toolchain, output_dir: Path) -> CompileResult:
        """Build ``libtree-sitter-parsers-<name>.a`` into ``output_dir``."""
        name = spec.name
        platform = toolchain.platform.name
        base_dir = self.base_dir(spec)
        src_dir = base_dir / "src"

        if not src_dir.is_dir():
            return self._failure(spec, platform, f"{name} - no src directory")

        try:
            parser_c = self.generator.ensure_parser(name, base_dir, src_dir)
        except GenerationError as exc:
            return self._failure(spec, platform, exc.message)

        sources = [parser_c]
        scanner = find_scanner(src_dir)
        if scanner is not None:
            sources.append(scanner)
        uses_cpp = any(is_cpp_source(source) for source in sources)

        output_dir.mkdir(parents=True, exist_ok=True)
        objects: list[Path] = []

        for source in sources:
            obj = output_dir / f"{name}_{source.stem}.o"
            args = self.compile_command(spec, toolchain, source, src_dir, base_dir, obj)
            try:
                self.runner.run(args, timeout=self.compile_timeout)
            except CommandError as exc:
                _unlink_all(objects + [obj])
                command = " ".join(args)
                return self._failure(
                    spec,
                    platform,
                    f"{name} - compile error:\nCommand: {command}\nError: {exc.output}",
                    command=command,
                    output=exc.output,
                )
            objects.append(obj)

        archive = output_dir / archive_name(name)
        # ar rcs appends to an existing archive
        archive.unlink(missing_ok=True)
        ar_args = [*toolchain.archiver(), "rcs", str(archive), *(str(obj) for obj in objects)]
        try:
            self.runner.run(ar_args, timeout=self.compile_timeout)
        except CommandError as exc:
            _unlink_all(objects + [archive])
            command = " ".join(ar_args)
            return self._failure(
                spec,
                platform,
                f"{name} - ar error:\nCommand: {command}\nError: {exc.output}",
                command=command,
                output=exc.output,
            )
        finally:
            _unlink_all(objects)

        if uses_cpp:
            (output_dir / cpp_marker_name(name)).write_bytes(b"")

        logger.info("compile.succeeded", grammar=name, platform=platform, cpp=uses_cpp)
        return CompileResult(
            name=name,
            platform=platform,
            success=True,
            message=f"{name} - compiled successfully",
            artifact_path=str(archive),
            uses_cpp=uses_cpp,
        )

    def compile_command(
        self,
        spec: GrammarSpec,
        toolchain: Toolchain,
        source: Path,
        src_dir: Path,
        base_dir: Path,
        obj: Path,
    ) -> list[str]:
        """Full compiler invocation for one translation unit."""
        args = [*toolchain.compiler_for(source), "-O3", "-c"]
        for include in toolchain.extra_include_dirs():
            args.extend(["-I", str(include)])
        args.extend(["-I", str(src_dir), "-I", str(base_dir)])
        root = self.cache_dir / spec.name
        if root != base_dir:
            args.extend(["-I", str(root)])
        args.extend(COMPILE_FLAGS)
        args.extend(rename_defines(spec.symbol_prefix))
        args.append(CXX_STANDARD if is_cpp_source(source) else C_STANDARD)
        args.extend([str(source), "-o", str(obj)])
        return args

    @staticmethod
    def _failure(
        spec: GrammarSpec,
        platform: str,
        message: str,
        *,
        command: str | None = None,
        output: str | None = None,
    ) -> CompileResult:
        logger.warning("compile.failed", grammar=spec.name, platform=platform, reason=message.splitlines()[0])
        return CompileResult(
            name=spec.name,
            platform=platform,
            success=False,
            message=message,
            command=command,
            output=output,
        )


def _unlink_all(paths: list[Path]) -> None:
    for path in paths:
        path.unlink(missing_ok=True)
