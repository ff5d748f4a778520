"""Tests for the local and HTTP host bridges."""

from __future__ import annotations

import json
import unittest

import httpx

from livecells.bridge import BridgeError, HttpBridge, LocalBridge, PublishedOutput, build_bridge


def make_http_bridge(handler, retries: int = 2) -> HttpBridge:
    client = httpx.Client(base_url="http://host.test", transport=httpx.MockTransport(handler))
    return HttpBridge("http://host.test", retries=retries, retry_backoff_seconds=0.0, client=client)


class LocalBridgeTests(unittest.TestCase):
    """Validate the in-process bridge."""

    def test_records_outputs_in_order(self) -> None:
        bridge = LocalBridge()
        bridge.put_output({"type": "a"})
        bridge.put_output_to("client1", {"type": "b"})
        bridge.put_output_to_clients({"type": "c"})
        self.assertEqual(
            bridge.outputs,
            [
                PublishedOutput("default", None, {"type": "a"}),
                PublishedOutput("client", "client1", {"type": "b"}),
                PublishedOutput("clients", None, {"type": "c"}),
            ],
        )

    def test_tokens_are_unique(self) -> None:
        bridge = LocalBridge()
        self.assertEqual(len({bridge.generate_token() for _ in range(100)}), 100)

    def test_file_lookup_reasons(self) -> None:
        bridge = LocalBridge(files={"data.csv": "/tmp/data.csv"}, forbidden_files={"secret"})
        self.assertEqual(bridge.get_file_entry_path("data.csv"), "/tmp/data.csv")
        with self.assertRaises(BridgeError) as ctx:
            bridge.get_file_entry_path("secret")
        self.assertEqual(ctx.exception.reason, "forbidden")
        with self.assertRaises(BridgeError) as ctx:
            bridge.get_file_entry_path("missing")
        self.assertEqual(ctx.exception.reason, "not_found")

    def test_build_bridge_from_config(self) -> None:
        self.assertIsInstance(build_bridge({"kind": "local"}), LocalBridge)
        bridge = build_bridge({"kind": "http", "url": "http://127.0.0.1:8787"})
        try:
            self.assertIsInstance(bridge, HttpBridge)
        finally:
            bridge.close()


class HttpBridgeTests(unittest.TestCase):
    """Validate RPC framing, error replies and retries."""

    def test_ok_reply_returns_value(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": "/notebooks/a.ipynb"})

        bridge = make_http_bridge(handler)
        self.assertEqual(bridge.get_evaluation_file(), "/notebooks/a.ipynb")
        self.assertEqual(requests[0].url.path, "/rpc/get_evaluation_file")

    def test_params_are_sent_as_json(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": {"id": "u1"}})

        bridge = make_http_bridge(handler)
        self.assertEqual(bridge.get_user_info("client1"), {"id": "u1"})
        self.assertEqual(seen, [{"client_id": "client1"}])

    def test_error_reply_raises_with_reason(self) -> None:
        bridge = make_http_bridge(lambda request: httpx.Response(200, json={"error": "forbidden"}))
        with self.assertRaises(BridgeError) as ctx:
            bridge.get_file_entry_path("secret")
        self.assertEqual(ctx.exception.reason, "forbidden")

    def test_non_json_error_status(self) -> None:
        bridge = make_http_bridge(lambda request: httpx.Response(500, text="boom"))
        with self.assertRaises(BridgeError) as ctx:
            bridge.get_app_info()
        self.assertEqual(ctx.exception.reason, "http_500")

    def test_transport_errors_are_retried(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"ok": "token"})

        bridge = make_http_bridge(handler)
        with self.assertLogs("livecells.bridge", level="WARNING") as logs:
            self.assertEqual(bridge.generate_token(), "token")
        self.assertEqual(calls["n"], 2)
        self.assertTrue(any("bridge.request.retry" in line for line in logs.output))

    def test_exhausted_retries_raise_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        bridge = make_http_bridge(handler, retries=1)
        with self.assertLogs("livecells.bridge", level="WARNING"):
            with self.assertRaises(BridgeError) as ctx:
                bridge.generate_token()
        self.assertEqual(ctx.exception.reason, "unreachable")

    def test_without_retries_a_single_attempt_is_made(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            raise httpx.ConnectError("refused", request=request)

        bridge = make_http_bridge(handler, retries=0)
        with self.assertLogs("livecells.bridge", level="WARNING"):
            with self.assertRaises(BridgeError) as ctx:
                bridge.get_app_info()
        self.assertEqual(ctx.exception.reason, "unreachable")
        self.assertEqual(calls["n"], 1)

    def test_only_network_bridges_block(self) -> None:
        self.assertTrue(make_http_bridge(lambda request: httpx.Response(200, json={"ok": None})).blocking)
        self.assertFalse(LocalBridge().blocking)

    def test_publish_failures_are_logged_not_raised(self) -> None:
        bridge = make_http_bridge(lambda request: httpx.Response(200, json={"error": "closed"}))
        with self.assertLogs("livecells.bridge", level="WARNING") as logs:
            bridge.put_output({"type": "terminal_text", "text": "1", "chunk": False})
        self.assertTrue(any("bridge.publish_failed" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
