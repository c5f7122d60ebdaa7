import os
import tempfile
import unittest
from pathlib import Path

from pipeline.config import PipelineConfig, dump_config_yaml, load_config_yaml, read_env_file
from pipeline.errors import ConfigError
from pipeline.wiring import load_config

CONFIG_YAML = """
tools:
  compiler: clang-18
  multiplier_bin_dir: /opt/mx/bin
build_command: make -j{jobs}
jobs: 6
timeouts:
  build: 600
  query: 30
extra_env:
  BOOST_ROOT: /opt/boost
  FROM_BOTH: config
cleanup_workspace: false
queries:
  main_calls:
    kind: call_graph
    artifact: main_cg
    params:
      entity_name: main
"""


class TestPipelineConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = PipelineConfig()
        self.assertEqual(("./build.sh", "-j{jobs}"), cfg.build_command)
        self.assertEqual("blight", cfg.primary_strategy)
        self.assertEqual("bear", cfg.fallback_strategy)
        self.assertEqual(4, cfg.query_workers)
        self.assertTrue(cfg.cleanup_workspace)

    def test_load_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "pipeline.yaml"
            p.write_text(CONFIG_YAML, encoding="utf-8")
            cfg = load_config_yaml(p)

        self.assertEqual("clang-18", cfg.tools.compiler)
        self.assertEqual("/opt/mx/bin", cfg.tools.multiplier_bin_dir)
        self.assertEqual("bear", cfg.tools.bear)
        self.assertEqual(("make", "-j{jobs}"), cfg.build_command)
        self.assertEqual(6, cfg.jobs)
        self.assertEqual(600.0, cfg.timeouts.build)
        self.assertEqual(30.0, cfg.timeouts.query)
        self.assertEqual(4 * 3600, cfg.timeouts.index)
        self.assertFalse(cfg.cleanup_workspace)

        (q,) = cfg.queries
        self.assertEqual("main_calls", q.name)
        self.assertEqual("main_cg", q.artifact_name)
        self.assertEqual({"entity_name": "main"}, dict(q.params))

    def test_yaml_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "in.yaml"
            src.write_text(CONFIG_YAML, encoding="utf-8")
            cfg = load_config_yaml(src)
            again = load_config_yaml(dump_config_yaml(Path(td) / "out.yaml", cfg))
        self.assertEqual(cfg.to_dict(), again.to_dict())

    def test_queries_as_list(self) -> None:
        cfg = PipelineConfig.from_dict({"queries": [{"name": "s", "kind": "symbol_search", "params": {"name": "x"}}]})
        self.assertEqual("s", cfg.queries[0].name)

    def test_string_build_command_keeps_quoted_arguments(self) -> None:
        cfg = PipelineConfig.from_dict({"build_command": "make CFLAGS='-O2 -g' -j{jobs}"})
        self.assertEqual(("make", "CFLAGS=-O2 -g", "-j{jobs}"), cfg.build_command)

    def test_bad_shapes_raise_config_error(self) -> None:
        bad = [
            ["not", "a", "mapping"],
            {"tools": "clang"},
            {"timeouts": {"build": "soon"}},
            {"timeouts": {"build": -1}},
            {"jobs": 0},
            {"build_command": []},
            {"build_command": "make CFLAGS='-O2"},
            {"queries": {"x": {"params": {}}}},
            {"queries": "divergence"},
            {"query_workers": "many"},
        ]
        for raw in bad:
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigError):
                    PipelineConfig.from_dict(raw)

    def test_missing_or_invalid_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                load_config_yaml(Path(td) / "nope.yaml")
            p = Path(td) / "broken.yaml"
            p.write_text("tools: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_config_yaml(p)

    def test_overrides(self) -> None:
        cfg = PipelineConfig().with_overrides(jobs=3, query_workers=None)
        self.assertEqual(3, cfg.jobs)
        self.assertEqual(4, cfg.query_workers)

        cfg = cfg.with_stage_timeout(90)
        self.assertEqual((90.0, 90.0, 90.0), (cfg.timeouts.build, cfg.timeouts.index, cfg.timeouts.query))
        self.assertEqual(60, cfg.timeouts.probe)

        cfg = cfg.with_tool_overrides(compiler="clang-17", bear=None)
        self.assertEqual("clang-17", cfg.tools.compiler)
        self.assertEqual("bear", cfg.tools.bear)
        with self.assertRaises(ConfigError):
            cfg.with_tool_overrides(nonsense="x")


class TestEnvFileLoading(unittest.TestCase):
    def test_read_env_file_with_dotenv(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / ".env"
            p.write_text('CXXFLAGS="-O2 -g"\n# comment\nBOOST_ROOT=/opt/boost\n', encoding="utf-8")
            values = read_env_file(p)
            self.assertEqual({"CXXFLAGS": "-O2 -g", "BOOST_ROOT": "/opt/boost"}, values)
            self.assertEqual({}, read_env_file(Path(td) / "missing.env"))

    def test_precedence_cli_over_config_over_env(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "pipeline.yaml"
            cfg_path.write_text(CONFIG_YAML, encoding="utf-8")
            env_path = Path(td) / ".env"
            env_path.write_text("FROM_BOTH=dotenv\nONLY_DOTENV=1\n", encoding="utf-8")

            cfg = load_config(cfg_path, env_file=env_path, jobs=12)

        self.assertEqual("config", cfg.extra_env["FROM_BOTH"])
        self.assertEqual("1", cfg.extra_env["ONLY_DOTENV"])
        self.assertEqual(12, cfg.jobs)

    def test_dotenv_does_not_touch_process_environment(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            env_path = Path(td) / ".env"
            env_path.write_text("NATIVE_AUDIT_TEST_ONLY=1\n", encoding="utf-8")
            load_config(None, env_file=env_path)
        self.assertNotIn("NATIVE_AUDIT_TEST_ONLY", os.environ)


if __name__ == "__main__":
    unittest.main()
