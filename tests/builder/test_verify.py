"""Archive and manifest consistency checks."""

from __future__ import annotations

import json

import pytest

from tsforge.build.verify import OutputVerifier, member_grammar

PLATFORM = "linux-x86_64-musl"


@pytest.fixture
def outputs(dist_dir):
    """Write a fake combined archive and manifest."""

    def _write(manifest_names, members):
        dist_dir.mkdir(parents=True, exist_ok=True)
        (dist_dir / f"grammars-{PLATFORM}.json").write_text(json.dumps([{"name": n} for n in manifest_names]))
        if members is not None:
            (dist_dir / f"libtree-sitter-parsers-all-{PLATFORM}.a").write_text(
                json.dumps({m: "" for m in members})
            )

    return _write


@pytest.mark.parametrize(
    ("member", "expected"),
    [
        ("json_parser.o", "json"),
        ("c_sharp_scanner.o", "c_sharp"),
        ("typescript-tsx_parser.o", "typescript-tsx"),
        ("__.SYMDEF", None),
        ("parser.o", None),
    ],
)
def test_member_grammar(member, expected):
    assert member_grammar(member) == expected


class TestOutputVerifier:
    def test_consistent(self, outputs, dist_dir, fake_runner):
        outputs(["c", "json"], ["c_parser.o", "json_parser.o", "json_scanner.o"])
        report = OutputVerifier(dist_dir, fake_runner).verify(PLATFORM)
        assert report.ok
        assert report.archive_names == ["c", "json"]
        assert fake_runner.calls[0].args[:2] == ["ar", "t"]

    def test_manifest_lists_missing_objects(self, outputs, dist_dir, fake_runner):
        outputs(["c", "json"], ["json_parser.o"])
        report = OutputVerifier(dist_dir, fake_runner).verify(PLATFORM)
        assert report.problems == ["c: in manifest but has no objects in the archive"]

    def test_archive_has_unlisted_objects(self, outputs, dist_dir, fake_runner):
        outputs(["json"], ["json_parser.o", "ruby_parser.o"])
        report = OutputVerifier(dist_dir, fake_runner).verify(PLATFORM)
        assert report.problems == ["ruby: objects in the archive but not in the manifest"]

    def test_missing_manifest(self, dist_dir, fake_runner):
        report = OutputVerifier(dist_dir, fake_runner).verify(PLATFORM)
        assert not report.ok
        assert report.problems[0].startswith("manifest not found")

    def test_missing_archive(self, outputs, dist_dir, fake_runner):
        outputs(["json"], None)
        report = OutputVerifier(dist_dir, fake_runner).verify(PLATFORM)
        assert report.problems[0].startswith("archive not found")

    def test_empty_manifest_needs_no_archive(self, outputs, dist_dir, fake_runner):
        outputs([], None)
        assert OutputVerifier(dist_dir, fake_runner).verify(PLATFORM).ok

    def test_unreadable_manifest(self, dist_dir, fake_runner):
        dist_dir.mkdir()
        (dist_dir / f"grammars-{PLATFORM}.json").write_text("{oops")
        report = OutputVerifier(dist_dir, fake_runner).verify(PLATFORM)
        assert report.problems[0].startswith("manifest unreadable")

    def test_listing_failure(self, outputs, dist_dir, fake_runner):
        outputs(["json"], ["json_parser.o"])
        fake_runner.fail_when(lambda args: args[1] == "t", stderr="ar: not an archive")
        report = OutputVerifier(dist_dir, fake_runner).verify(PLATFORM)
        assert "not an archive" in report.problems[0]

    def test_custom_archiver(self, outputs, dist_dir, fake_runner):
        outputs(["json"], ["json_parser.o"])
        OutputVerifier(dist_dir, fake_runner, archiver=["zig", "ar"]).verify(PLATFORM)
        assert fake_runner.calls[0].args[:3] == ["zig", "ar", "t"]

    def test_built_platforms(self, outputs, dist_dir):
        outputs(["json"], ["json_parser.o"])
        (dist_dir / "grammars-host.json").write_text("[]")
        (dist_dir / "build-summary.json").write_text("{}")
        assert OutputVerifier(dist_dir).built_platforms() == ["host", PLATFORM]
