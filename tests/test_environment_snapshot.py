import tempfile
import unittest
from pathlib import Path

from fake_tools import INCLUDE_DIRS, RESOURCE_DIR, FakeRunner, add_clang

from pipeline.environment import capture, load_snapshot, render_env_file, save_snapshot, write_env_file
from pipeline.errors import StageTimeoutError, ToolchainQueryError
from pipeline.models import EnvironmentSnapshot
from tools.clang import parse_include_search_paths

BASE_ENV = {"PATH": "/usr/local/bin:/usr/bin:/bin", "HOME": "/root", "LANG": "C.UTF-8"}


class TestCapture(unittest.TestCase):
    def test_capture_reads_resource_dir_and_include_paths(self) -> None:
        runner = add_clang(FakeRunner())
        snap = capture(runner=runner, base_env=BASE_ENV, extra={"BOOST_ROOT": "/opt/boost"})

        self.assertEqual(RESOURCE_DIR, snap.resource_dir)
        self.assertEqual((*INCLUDE_DIRS, f"{RESOURCE_DIR}/include"), snap.include_paths)
        self.assertEqual("/opt/boost", snap.variables["BOOST_ROOT"])
        self.assertEqual(BASE_ENV["PATH"], snap.variables["PATH"])
        self.assertIsNotNone(snap.captured_at)

        # Both probes ran with the captured environment, not the live one.
        self.assertEqual(2, len(runner.calls))
        for inv in runner.calls:
            self.assertEqual("/opt/boost", inv.env["BOOST_ROOT"])

    def test_search_paths_put_resource_include_first(self) -> None:
        snap = capture(runner=add_clang(FakeRunner()), base_env=BASE_ENV)
        self.assertEqual(f"{RESOURCE_DIR}/include", snap.search_paths[0])
        self.assertEqual(len(set(snap.search_paths)), len(snap.search_paths))

    def test_resource_dir_failure_raises(self) -> None:
        runner = FakeRunner().on(
            lambda inv: "-print-resource-dir" in inv.cmd,
            lambda inv: (1, "", "clang: error: unknown argument"),
        )
        with self.assertRaises(ToolchainQueryError):
            capture(runner=runner, base_env=BASE_ENV)

    def test_missing_compiler_raises(self) -> None:
        runner = FakeRunner().on(lambda inv: True, lambda inv: (127, "", "FileNotFoundError: clang"))
        with self.assertRaises(ToolchainQueryError):
            capture(runner=runner, compiler="clang-does-not-exist", base_env=BASE_ENV)

    def test_empty_resource_dir_output_raises(self) -> None:
        runner = FakeRunner().on(lambda inv: "-print-resource-dir" in inv.cmd, lambda inv: (0, "\n"))
        with self.assertRaises(ToolchainQueryError):
            capture(runner=runner, base_env=BASE_ENV)

    def test_include_probe_failure_is_only_a_warning(self) -> None:
        runner = FakeRunner()
        runner.on(lambda inv: "-print-resource-dir" in inv.cmd, lambda inv: (0, RESOURCE_DIR))
        runner.on(lambda inv: "-E" in inv.cmd, lambda inv: (1, "", "boom"))
        with self.assertLogs("pipeline.environment", level="WARNING"):
            snap = capture(runner=runner, base_env=BASE_ENV)
        self.assertEqual((), snap.include_paths)
        self.assertEqual((f"{RESOURCE_DIR}/include",), snap.search_paths)

    def test_include_search_timeout_keeps_the_snapshot(self) -> None:
        def _hang(inv):
            raise StageTimeoutError(" ".join(inv.cmd), 5)

        runner = FakeRunner()
        runner.on(lambda inv: "-print-resource-dir" in inv.cmd, lambda inv: (0, RESOURCE_DIR))
        runner.on(lambda inv: "-E" in inv.cmd, _hang)
        with self.assertLogs("pipeline.environment", level="WARNING") as logs:
            snap = capture(runner=runner, base_env=BASE_ENV, timeout_seconds=5)
        self.assertEqual(RESOURCE_DIR, snap.resource_dir)
        self.assertEqual((), snap.include_paths)
        self.assertIn("timed out", "\n".join(logs.output))


class TestSnapshotPersistence(unittest.TestCase):
    def test_save_load_round_trip(self) -> None:
        env = {"ZZZ": "last", "AAA": "first", "PATH": "/usr/bin"}
        snap = capture(runner=add_clang(FakeRunner()), base_env=env)
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "env_snapshot.json"
            save_snapshot(snap, p)
            loaded = load_snapshot(p)

        self.assertEqual(dict(snap.variables), dict(loaded.variables))
        self.assertEqual(list(snap.variables), list(loaded.variables))
        self.assertEqual(snap.search_paths, loaded.search_paths)
        self.assertEqual(snap.resource_dir, loaded.resource_dir)
        self.assertEqual(snap.content_hash(), loaded.content_hash())

    def test_variables_are_read_only(self) -> None:
        snap = EnvironmentSnapshot(variables={"A": "1"}, resource_dir=RESOURCE_DIR)
        with self.assertRaises(TypeError):
            snap.variables["A"] = "2"  # type: ignore[index]

    def test_content_hash_ignores_capture_time(self) -> None:
        a = EnvironmentSnapshot(variables={"A": "1"}, resource_dir=RESOURCE_DIR, captured_at="t1")
        b = EnvironmentSnapshot(variables={"A": "1"}, resource_dir=RESOURCE_DIR, captured_at="t2")
        c = EnvironmentSnapshot(variables={"A": "2"}, resource_dir=RESOURCE_DIR, captured_at="t1")
        self.assertEqual(a.content_hash(), b.content_hash())
        self.assertNotEqual(a.content_hash(), c.content_hash())


class TestEnvFile(unittest.TestCase):
    def test_env_file_carries_derived_toolchain_variables(self) -> None:
        snap = EnvironmentSnapshot(
            variables={"PATH": "/usr/bin", "CPATH": "/inherited", "MULTI": "a\nb"},
            resource_dir=RESOURCE_DIR,
            include_paths=("/usr/include",),
        )
        text = render_env_file(snap)
        lines = text.splitlines()

        self.assertIn("PATH=/usr/bin", lines)
        self.assertIn(f"LIBRARY_PATH={RESOURCE_DIR}", lines)
        self.assertIn(f'CPATH="{RESOURCE_DIR}/include:/usr/include"', lines)
        self.assertIn('CPPFLAGS="-nostdinc -nobuiltininc"', lines)
        self.assertNotIn("CPATH=/inherited", lines)
        self.assertFalse(any(line.startswith("MULTI=") for line in lines))

    def test_derived_variables_do_not_leak_into_build_environment(self) -> None:
        snap = EnvironmentSnapshot(variables={"PATH": "/usr/bin"}, resource_dir=RESOURCE_DIR)
        env = snap.as_environ({"EXTRA": "1"})
        self.assertNotIn("CPPFLAGS", env)
        self.assertEqual("1", env["EXTRA"])
        self.assertNotIn("EXTRA", snap.variables)

    def test_write_env_file(self) -> None:
        snap = EnvironmentSnapshot(variables={"PATH": "/usr/bin"}, resource_dir=RESOURCE_DIR)
        with tempfile.TemporaryDirectory() as td:
            p = write_env_file(snap, Path(td) / "env_vars.txt")
            self.assertEqual(render_env_file(snap), p.read_text(encoding="utf-8"))


class TestIncludeParsing(unittest.TestCase):
    def test_parse_include_search_paths(self) -> None:
        out = "\n".join(
            [
                "ignoring nonexistent directory \"/nope\"",
                "#include <...> search starts here:",
                " /usr/local/include",
                " /Library/Frameworks (framework directory)",
                " /usr/local/include",
                "End of search list.",
                " /after/end",
            ]
        )
        self.assertEqual(["/usr/local/include", "/Library/Frameworks"], parse_include_search_paths(out))

    def test_parse_without_markers_is_empty(self) -> None:
        self.assertEqual([], parse_include_search_paths("clang version 18\n"))


if __name__ == "__main__":
    unittest.main()
