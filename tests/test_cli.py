import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path

from fake_tools import FakeRunner, add_clang, add_multiplier, add_recording_build, make_sources

import audit_cli
from cli.common import parse_csv, parse_query_names
from cli.dispatch import dispatch
from pipeline.wiring import build_pipeline


class TestArgParsing(unittest.TestCase):
    def test_run_flags(self) -> None:
        args = audit_cli.build_parser().parse_args(
            [
                "run",
                "--project", "./pastel",
                "--out", "./out",
                "-j", "8",
                "--queries", "sketchy_casts,call_graph",
                "--entity", "main",
                "--reachable-from", "log",
                "--timeout", "30",
                "--blight-exec", "/opt/blight/bin/blight-exec",
            ]
        )
        self.assertEqual("run", args.command)
        self.assertEqual(8, args.jobs)
        self.assertEqual("main", args.entity)
        self.assertEqual("log", args.reachable_from)
        self.assertEqual(30.0, args.timeout)
        self.assertEqual("/opt/blight/bin/blight-exec", args.blight_exec)
        self.assertIsNone(args.embed_commands)
        self.assertEqual("INFO", args.log_level)

    def test_run_requires_project_and_out(self) -> None:
        with redirect_stderr(StringIO()), self.assertRaises(SystemExit):
            audit_cli.build_parser().parse_args(["run", "--project", "x"])

    def test_query_name_parsing(self) -> None:
        self.assertIsNone(parse_query_names(None))
        self.assertEqual([], parse_query_names(""))
        self.assertEqual(["a", "b"], parse_query_names(" a, ,b "))
        self.assertEqual([], parse_csv(None))


class TestDispatch(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        root = Path(self._td.name)
        self.project = root / "pastel"
        self.project.mkdir()
        self.out = root / "out"
        self.env_file = root / "missing.env"
        self.sources = make_sources(self.project, 2)

        self.runner = add_clang(FakeRunner())
        add_recording_build(self.runner, self.project, self.sources)
        add_multiplier(self.runner)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _dispatch(self, argv):
        args = audit_cli.build_parser().parse_args(argv + ["--env-file", str(self.env_file)])
        buf = StringIO()
        with redirect_stdout(buf):
            code = dispatch(args, build_pipeline(runner=self.runner))
        return code, buf.getvalue()

    def test_run_command_succeeds(self) -> None:
        code, out = self._dispatch(
            ["run", "--project", str(self.project), "--out", str(self.out), "-j", "3", "--queries", "sketchy_casts"]
        )
        self.assertEqual(0, code, out)
        manifest = json.loads((self.out / "run_manifest.json").read_text(encoding="utf-8"))
        self.assertEqual("succeeded", manifest["status"])
        self.assertEqual(["sketchy_casts"], list(manifest["queries"]))
        build = next(c for c in self.runner.calls if c.step == "build_uninstrumented")
        self.assertEqual("-j3", build.cmd[-1])

    def test_invalid_timeout_is_usage_error(self) -> None:
        code, out = self._dispatch(
            ["run", "--project", str(self.project), "--out", str(self.out), "--timeout", "-5"]
        )
        self.assertEqual(2, code)
        self.assertIn("timeout", out)
        self.assertEqual([], self.runner.calls)

    def test_missing_project_fails_with_usage_code(self) -> None:
        code, _ = self._dispatch(["run", "--project", str(self.project / "nope"), "--out", str(self.out)])
        self.assertEqual(2, code)
        self.assertEqual([], self.runner.calls)

    def test_queries_command_lists_catalog_and_config_queries(self) -> None:
        cfg = Path(self._td.name) / "pipeline.yaml"
        cfg.write_text(
            "queries:\n  find_main:\n    kind: symbol_search\n    params:\n      name: main\n",
            encoding="utf-8",
        )
        code, out = self._dispatch(["queries", "--config", str(cfg)])
        self.assertEqual(0, code)
        self.assertIn("divergent_candidates", out)
        self.assertIn("mx-print-call-graph", out)
        self.assertIn("call_graph.dot", out)
        self.assertIn("find_main", out)


if __name__ == "__main__":
    unittest.main()
