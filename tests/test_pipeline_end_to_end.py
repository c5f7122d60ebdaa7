import json
import tempfile
import unittest
from contextlib import redirect_stdout
from io import StringIO
from pathlib import Path

from fake_tools import FakeRunner, add_clang, add_multiplier, add_recording_build, make_sources

from pipeline.config import PipelineConfig
from pipeline.models import RunStatus
from pipeline.orchestrator import RunRequest
from pipeline.wiring import build_pipeline


class TestPipelineEndToEnd(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        root = Path(self._td.name)
        self.project = root / "pastel"
        self.project.mkdir()
        self.out = root / "out"
        self.sources = make_sources(self.project, 5)
        self.config = PipelineConfig(probe_tools=("sh",), extra_env={"BOOST_ROOT": "/opt/boost"})

    def tearDown(self) -> None:
        self._td.cleanup()

    def _runner(self, **build_kwargs) -> FakeRunner:
        runner = add_clang(FakeRunner())
        add_recording_build(runner, self.project, self.sources, **build_kwargs)
        return add_multiplier(runner)

    def _run(self, runner: FakeRunner, **req_kwargs):
        req = RunRequest(project_dir=self.project, out_dir=self.out, config=self.config, jobs=2, **req_kwargs)
        with redirect_stdout(StringIO()):
            pipeline = build_pipeline(runner=runner)
            run = pipeline.run(req)
        return run, pipeline

    def _manifest(self):
        return json.loads((self.out / "run_manifest.json").read_text(encoding="utf-8"))

    def test_blight_failure_recovers_and_indexing_proceeds(self) -> None:
        runner = self._runner(blight_exit=127)

        run, _ = self._run(runner, entity="main", reachable_from="log")

        self.assertEqual(RunStatus.SUCCEEDED, run.status)
        self.assertEqual(["primary->retrying", "retrying->recovered"], [t.split(":")[0] for t in run.fallback_transitions])
        self.assertIsNotNone(run.index)
        self.assertEqual(5, run.index.entries_indexed)
        self.assertEqual(5, len(run.query_outcomes))
        self.assertTrue(all(o.ok for o in run.query_outcomes.values()), run.query_failures())
        for a in run.artifacts:
            self.assertTrue(a.path.exists(), a.path)

        for name in ("env_snapshot.json", "env_vars.txt", "compile_commands.json", "compile_commands.filtered.json"):
            self.assertTrue((self.out / name).exists(), name)
        self.assertTrue((self.out / "artifacts" / "call_graph.dot").exists())
        self.assertTrue((self.out / "artifacts" / "divergent_candidates.txt").exists())

        manifest = self._manifest()
        self.assertEqual("succeeded", manifest["status"])
        self.assertEqual(3, len(manifest["build"]["attempts"]))
        self.assertTrue(manifest["build"]["uninstrumented_ok"])
        self.assertEqual({}, manifest["query_failures"])
        self.assertTrue(any(s["name"] == "snapshot" for s in manifest["history"]))
        self.assertTrue(any(s["name"] == "probe:sh" for s in manifest["history"]))

    def test_compilation_record_is_a_run_artifact(self) -> None:
        runner = self._runner(blight_exit=127)
        run, _ = self._run(runner, query_names=[])

        record = next(a for a in run.artifacts if a.name == "compile_commands")
        self.assertEqual("record", record.kind)
        self.assertEqual("build:bear", record.producer)
        self.assertEqual(self.out.resolve() / "compile_commands.json", record.path)
        self.assertTrue(record.path.exists())

        listed = {a["name"]: a for a in self._manifest()["artifacts"]}
        self.assertEqual("record", listed["compile_commands"]["kind"])

    def test_unexpected_error_is_recorded_before_surfacing(self) -> None:
        def _boom(inv):
            raise RuntimeError("runner exploded")

        runner = add_clang(FakeRunner()).on_program("build.sh", _boom)
        with redirect_stdout(StringIO()), self.assertRaises(RuntimeError):
            build_pipeline(runner=runner).run(
                RunRequest(project_dir=self.project, out_dir=self.out, config=self.config, jobs=1)
            )

        manifest = self._manifest()
        self.assertEqual("failed", manifest["status"])
        self.assertEqual("RuntimeError", manifest["error"]["type"])

    def test_extra_env_reaches_the_build(self) -> None:
        runner = self._runner()
        self._run(runner, query_names=[])
        build = next(c for c in runner.calls if c.step == "build_uninstrumented")
        self.assertEqual("/opt/boost", build.env["BOOST_ROOT"])

    def test_empty_query_list_is_overall_success(self) -> None:
        runner = self._runner()
        run, pipeline = self._run(runner, query_names=[])

        self.assertEqual(RunStatus.SUCCEEDED, run.status)
        self.assertEqual({}, run.query_outcomes)
        self.assertFalse(any(Path(p).name.startswith("mx-find") for p in runner.programs()))

    def test_query_failures_do_not_fail_the_run(self) -> None:
        runner = self._runner()
        # No --entity: the graph queries cannot be addressed.
        run, _ = self._run(runner)

        self.assertEqual(RunStatus.SUCCEEDED, run.status)
        self.assertEqual({"call_graph", "reference_graph"}, set(run.query_failures()))
        self.assertTrue(run.query_outcomes["sketchy_casts"].ok)
        self.assertEqual(2, len(self._manifest()["query_failures"]))

    def test_exit_codes(self) -> None:
        req = RunRequest(project_dir=self.project, out_dir=self.out, config=self.config, jobs=1, query_names=[])
        with redirect_stdout(StringIO()):
            self.assertEqual(0, build_pipeline(runner=self._runner()).run_exit_code(req))
            self.assertEqual(1, build_pipeline(runner=self._runner(build_exit=1)).run_exit_code(req))
            bad = RunRequest(project_dir=self.project, out_dir=self.out, config=self.config, query_names=["nope"])
            self.assertEqual(2, build_pipeline(runner=self._runner()).run_exit_code(bad))

    def test_build_failure_is_recorded_in_manifest(self) -> None:
        runner = self._runner(build_exit=2)
        run, _ = self._run(runner)

        self.assertEqual(RunStatus.FAILED, run.status)
        self.assertEqual("BuildError", run.error_type)
        self.assertNotIn("blight-exec", runner.programs())
        self.assertIsNone(run.index)

        manifest = self._manifest()
        self.assertEqual("failed", manifest["status"])
        self.assertEqual("BuildError", manifest["error"]["type"])
        self.assertEqual(1, len(manifest["build"]["attempts"]))
        self.assertFalse(manifest["build"]["uninstrumented_ok"])
        # Snapshot from the stage that succeeded is kept.
        self.assertTrue((self.out / "env_snapshot.json").exists())

    def test_instrumentation_exhausted_keeps_uninstrumented_result(self) -> None:
        runner = self._runner(blight_exit=1, bear_exit=1)
        run, _ = self._run(runner)

        self.assertEqual("InstrumentationError", run.error_type)
        manifest = self._manifest()
        self.assertTrue(manifest["build"]["uninstrumented_ok"])
        self.assertTrue(manifest["build"]["fallback_transitions"][-1].startswith("retrying->exhausted"))

    def test_unknown_query_fails_before_any_tool_runs(self) -> None:
        runner = self._runner()
        run, _ = self._run(runner, query_names=["does_not_exist"])
        self.assertEqual("ConfigError", run.error_type)
        self.assertEqual([], runner.calls)

    def test_toolchain_failure_aborts_run(self) -> None:
        runner = FakeRunner().on(lambda inv: "-print-resource-dir" in inv.cmd, lambda inv: (1, "", "no clang"))
        run, _ = self._run(runner)
        self.assertEqual("ToolchainQueryError", run.error_type)
        self.assertEqual("failed", self._manifest()["status"])

    def test_second_run_reuses_index(self) -> None:
        runner = self._runner()
        first, _ = self._run(runner, query_names=[])
        second, _ = self._run(runner, query_names=[])

        self.assertFalse(first.index.cached)
        self.assertTrue(second.index.cached)
        self.assertEqual(1, sum(1 for p in runner.programs() if p.endswith("mx-index")))

    def test_embed_commands_step_is_recorded(self) -> None:
        self.config = PipelineConfig(probe_tools=(), embed_commands=True)
        runner = self._runner()
        run, _ = self._run(runner, query_names=[])

        self.assertEqual(RunStatus.SUCCEEDED, run.status)
        self.assertIn("embed_commands", [s.name for s in run.history])


if __name__ == "__main__":
    unittest.main()
