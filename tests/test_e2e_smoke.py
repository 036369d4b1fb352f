import io
import json
import sys
import tempfile
import threading
import unittest
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from jotter import server_api, server_http  # noqa: E402
from jotter.note_store import NoteStore  # noqa: E402
from jotter_mcp.api_client import ApiClient  # noqa: E402
from jotter_mcp.mcp_server import JotterMCP  # noqa: E402


class EndToEndSmokeTests(unittest.TestCase):
    """MCP frames in, real HTTP API and SQLite store behind it."""

    def setUp(self):
        self.temp = tempfile.TemporaryDirectory()
        self.store = NoteStore(Path(self.temp.name) / "notes.db")
        self.orig_store = server_api._store
        self.orig_llm_config = server_api._llm_config
        server_api.set_store(self.store)
        server_api._llm_config = lambda: {}

        self.server = server_http.make_server("127.0.0.1", 0)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        self.port = self.server.server_address[1]

        self.out = io.StringIO()
        self.mcp = JotterMCP(
            api=ApiClient(f"http://127.0.0.1:{self.port}/api", timeout=5),
            out=self.out,
        )
        self._next_id = 0

    def tearDown(self):
        self.mcp.close()
        self.server.shutdown()
        self.server.server_close()
        self.thread.join(timeout=2)
        server_api.set_store(self.orig_store)
        server_api._llm_config = self.orig_llm_config
        self.store.close()
        self.temp.cleanup()

    def rpc(self, method, params=None):
        self._next_id += 1
        req_id = self._next_id
        msg = {"jsonrpc": "2.0", "id": req_id, "method": method, "params": params or {}}
        future = self.mcp.handle_frame(json.dumps(msg))
        if future is not None:
            future.result(timeout=10)
        for line in self.out.getvalue().splitlines():
            reply = json.loads(line)
            if reply.get("id") == req_id:
                return reply
        self.fail(f"no reply for {method}")

    def tool(self, name, arguments=None):
        reply = self.rpc("tools/call", {"name": name, "arguments": arguments or {}})
        result = reply["result"]
        text = result["content"][0]["text"]
        if result["isError"]:
            return None, text
        return json.loads(text), None

    def test_core_tool_flow(self):
        init = self.rpc("initialize", {"protocolVersion": "2025-06-18"})
        self.assertIn("serverInfo", init["result"])

        note, err = self.tool("create_note", {"text": "Review the budget before the deadline"})
        self.assertIsNone(err)
        note_id = note["id"]

        self.tool("create_note", {"text": "Nice sunset at the beach"})

        listed, _ = self.tool("list_notes")
        self.assertEqual(2, len(listed))

        enriched, err = self.tool("enrich_note", {"id": note_id})
        self.assertIsNone(err)
        self.assertIn("signal", enriched["tags"])
        self.assertTrue(enriched["summary"])

        edited, _ = self.tool("edit_note", {"id": note_id, "text": "Review the budget today"})
        self.assertEqual("Review the budget today", edited["text"])

        hits, _ = self.tool("search_notes", {"q": "budget"})
        self.assertEqual([note_id], [n["id"] for n in hits])

        hits, _ = self.tool("search_notes", {"tag": "signal"})
        self.assertEqual([note_id], [n["id"] for n in hits])

        top, _ = self.tool("top_signals_today", {"limit": 3})
        self.assertEqual([note_id], [n["id"] for n in top])

        fetched, _ = self.tool("get_note", {"id": note_id})
        self.assertEqual(edited["text"], fetched["text"])

        deleted, _ = self.tool("delete_note", {"id": note_id})
        self.assertEqual({"ok": True}, deleted)

        _, err = self.tool("get_note", {"id": note_id})
        self.assertTrue(err.startswith("Tool failed: "))
        self.assertIn("NOTE_NOT_FOUND", err)

    def test_legacy_dialect_against_live_api(self):
        created = self.rpc("notes.create", {"text": "todo: call the plumber"})["result"]
        listed = self.rpc("notes.list")["result"]
        self.assertEqual([created["id"]], [n["id"] for n in listed])

        enriched = self.rpc("notes.enrich", {"id": created["id"]})["result"]
        self.assertIn("signal", enriched["tags"])

        found = self.rpc("notes.search", {"q": "PLUMBER"})["result"]
        self.assertEqual(1, len(found))

        reply = self.rpc("notes.update", {"text": "no id given"})
        self.assertEqual(-32603, reply["error"]["code"])

    def test_stdio_session_over_byte_stream(self):
        frames = [
            {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/call",
             "params": {"name": "create_note", "arguments": {"text": "héllo wörld"}}},
            {"jsonrpc": "2.0", "id": 3, "method": "tools/list"},
        ]
        stream = io.BytesIO("".join(json.dumps(f, ensure_ascii=False) + "\n" for f in frames).encode("utf-8"))
        self.mcp.run(stream)

        replies = {r["id"]: r for r in map(json.loads, self.out.getvalue().splitlines())}
        self.assertEqual({1, 2, 3}, set(replies))
        created = json.loads(replies[2]["result"]["content"][0]["text"])
        self.assertEqual("héllo wörld", created["text"])
        self.assertEqual("héllo wörld", self.store.get(created["id"])["text"])


if __name__ == "__main__":
    unittest.main()
