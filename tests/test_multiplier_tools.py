import unittest
from pathlib import Path

from tools.multiplier import index_command, parse_symbol_matches, pick_entity_id, query_command, tool_path

FIND_SYMBOL_OUTPUT = """
1152921504606847000\tFunctionDecl\tlog_message
1152921504606847001\tFunctionDecl\tlog
not an entity line
\t
"""


class TestMultiplierCommands(unittest.TestCase):
    def test_tool_path(self) -> None:
        self.assertEqual("/opt/mx/bin/mx-index", tool_path("/opt/mx/bin", "mx-index"))
        self.assertEqual("mx-index", tool_path(None, "mx-index"))
        self.assertEqual("mx-index", tool_path("", "mx-index"))

    def test_index_command(self) -> None:
        cmd = index_command(
            "mx-index",
            db=Path("/out/index/k.db"),
            target=Path("/out/compile_commands.filtered.json"),
            workspace=Path("/out/workspace"),
            env_file=Path("/out/env_vars.txt"),
            show_progress=True,
        )
        self.assertEqual(
            [
                "mx-index",
                "--db", "/out/index/k.db",
                "--target", "/out/compile_commands.filtered.json",
                "--workspace", "/out/workspace",
                "--env", "/out/env_vars.txt",
                "--show_progress",
            ],
            cmd,
        )

    def test_query_command_renders_switches_and_values(self) -> None:
        cmd = query_command(
            "mx-print-call-graph",
            db=Path("/idx.db"),
            flags={"entity_id": "12", "reachable_from_entity_id": None, "show_locations": True, "quiet": False},
        )
        self.assertEqual(["mx-print-call-graph", "--db", "/idx.db", "--entity_id", "12", "--show_locations"], cmd)


class TestSymbolParsing(unittest.TestCase):
    def test_parse_ignores_lines_without_ids(self) -> None:
        matches = parse_symbol_matches(FIND_SYMBOL_OUTPUT)
        self.assertEqual(2, len(matches))
        self.assertEqual("1152921504606847000", matches[0].entity_id)
        self.assertEqual(("FunctionDecl", "log_message"), matches[0].names())

    def test_pick_prefers_exact_name(self) -> None:
        matches = parse_symbol_matches(FIND_SYMBOL_OUTPUT)
        self.assertEqual("1152921504606847001", pick_entity_id(matches, "log"))
        self.assertEqual("1152921504606847000", pick_entity_id(matches, "lo"))
        self.assertIsNone(pick_entity_id([], "log"))
        self.assertEqual([], parse_symbol_matches(""))


if __name__ == "__main__":
    unittest.main()
