import asyncio
import io
import json
import os
import unittest
from unittest import mock

import httpx

from campussync.cli import build_parser, format_items, main, watch_table
from campussync.controller import CampusApiClient, RetryPolicy
from campussync.local import ScopeFilter
from campussync.manager import CampusConsole
from campussync.models import ChangeEvent
from campussync.sync import InMemoryChangeStream


class TestParser(unittest.TestCase):
    def test_watch_with_filter(self) -> None:
        args = build_parser().parse_args(["watch", "bookings", "--filter", "user_id=eq.4"])
        self.assertEqual(args.command, "watch")
        self.assertEqual(args.table, "bookings")
        self.assertEqual(args.scope, ScopeFilter(column="user_id", value="4"))

    def test_watch_rejects_unknown_table(self) -> None:
        with mock.patch("sys.stderr", new=io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args(["watch", "rooms"])

    def test_stats_with_global_options(self) -> None:
        args = build_parser().parse_args(["--log-level", "DEBUG", "--token", "t", "stats"])
        self.assertEqual(args.command, "stats")
        self.assertEqual(args.log_level, "DEBUG")
        self.assertEqual(args.token, "t")

    def test_format_items(self) -> None:
        line = format_items("change", "users", ({"id": 1, "name": "Aiko"},))
        self.assertEqual(
            json.loads(line),
            {"event": "change", "table": "users", "count": 1, "items": [{"id": 1, "name": "Aiko"}]},
        )

    def test_main_rejects_invalid_configuration(self) -> None:
        with mock.patch.dict(os.environ, {"CAMPUSSYNC_TIMEOUT": "soon"}):
            with mock.patch("sys.stderr", new=io.StringIO()) as err:
                code = main(["stats"])
        self.assertEqual(code, 2)
        self.assertIn("CAMPUSSYNC_TIMEOUT", err.getvalue())


class TestWatchTable(unittest.IsolatedAsyncioTestCase):
    async def test_prints_snapshot_and_changes_until_stream_fails(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": 1, "name": "Room A", "status": "AVAILABLE"}])

        http = httpx.AsyncClient(base_url="http://campus.test/api", transport=httpx.MockTransport(handler))
        api = CampusApiClient.from_http_client(http, retry_policy=RetryPolicy(max_retries=0))
        stream = InMemoryChangeStream()
        out = io.StringIO()

        async with CampusConsole.from_components(api, stream) as console:
            task = asyncio.create_task(watch_table(console, "resources", None, out=out))
            while len(out.getvalue().splitlines()) < 1:
                await asyncio.sleep(0)
            stream.publish(ChangeEvent.update("resources", {"id": 1, "status": "UNAVAILABLE"}))
            with self.assertLogs("campussync.cli", level="ERROR"):
                stream.drop("resources")
                code = await asyncio.wait_for(task, 1.0)

        self.assertEqual(code, 1)
        lines = [json.loads(line) for line in out.getvalue().splitlines()]
        self.assertEqual([line["event"] for line in lines], ["snapshot", "change"])
        self.assertEqual(lines[1]["items"][0]["status"], "UNAVAILABLE")
        self.assertEqual(stream.open_channels, [])


if __name__ == "__main__":
    unittest.main()
