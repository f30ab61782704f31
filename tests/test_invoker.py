"""Tests for API invocation."""

import json

import httpx

from synthetic_monitor.invoker import ApiInvoker
from synthetic_monitor.models import ApiDefinition, Node, ParameterDefinition, ParameterType
from synthetic_monitor.parameters import coerce_parameters

NODE = Node(id=1, name="web-1", host="10.0.0.1", port=8080)


def api(method: str, uri: str, **params: str) -> ApiDefinition:
    """API definition whose keyword arguments map parameter names to types."""
    return ApiDefinition(
        id=1,
        name="api",
        method=method,
        uri=uri,
        parameters=tuple(
            ParameterDefinition(name, ParameterType(kind), required=kind == "path")
            for name, kind in params.items()
        ),
    )


class TestBuildRequest:
    """Tests for request construction."""

    def test_path_and_query(self, make_invoker):
        invoker = make_invoker(lambda request: httpx.Response(200))
        request = invoker.build_request(
            api("GET", "/api/orders/{order_id}", order_id="path", verbose="query"),
            NODE,
            coerce_parameters({"order_id": "a b/1", "verbose": True}),
        )
        assert request.method == "GET"
        assert request.url.raw_path == b"/api/orders/a%20b%2F1?verbose=true"
        assert request.url.host == "10.0.0.1"
        assert request.url.port == 8080

    def test_body_parameters_for_post(self, make_invoker):
        invoker = make_invoker(lambda request: httpx.Response(200))
        request = invoker.build_request(
            api("POST", "/api/orders", sku="body", quantity="body", dry_run="query"),
            NODE,
            coerce_parameters({"sku": "A-1", "quantity": 2, "dry_run": False}),
        )
        assert json.loads(request.content) == {"sku": "A-1", "quantity": 2}
        assert request.url.params["dry_run"] == "false"

    def test_body_parameters_for_get_go_to_query(self, make_invoker):
        invoker = make_invoker(lambda request: httpx.Response(200))
        request = invoker.build_request(
            api("GET", "/api/search", term="body"),
            NODE,
            coerce_parameters({"term": "widgets"}),
        )
        assert request.url.params["term"] == "widgets"
        assert request.content == b""


class TestInvoke:
    """Tests for ApiInvoker.invoke."""

    def test_success_with_json(self, make_invoker):
        invoker = make_invoker(lambda request: httpx.Response(200, json={"ok": True}))
        result = invoker.invoke(api("GET", "/api/status"), NODE, {})
        assert result.success
        assert result.status_code == 200
        assert result.data == {"ok": True}
        assert result.response_time_ms >= 0

    def test_text_body(self, make_invoker):
        invoker = make_invoker(lambda request: httpx.Response(200, text="pong"))
        assert invoker.invoke(api("GET", "/ping"), NODE, {}).data == "pong"

    def test_empty_body(self, make_invoker):
        invoker = make_invoker(lambda request: httpx.Response(204))
        result = invoker.invoke(api("GET", "/ping"), NODE, {})
        assert result.success
        assert result.data is None

    def test_http_error_status(self, make_invoker):
        invoker = make_invoker(lambda request: httpx.Response(503, json={"error": "down"}))
        result = invoker.invoke(api("GET", "/api/status"), NODE, {})
        assert not result.success
        assert result.status_code == 503
        assert result.payload == {"error": "down"}

    def test_network_error(self, make_invoker):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = make_invoker(handler).invoke(api("GET", "/api/status"), NODE, {})
        assert not result.success
        assert result.status_code == 0
        assert "connection refused" in result.error["message"]

    def test_redirect_is_followed(self, make_invoker):
        def handler(request):
            if request.url.path == "/api/status":
                return httpx.Response(302, headers={"Location": "/api/v2/status"})
            return httpx.Response(200, json={"ok": True})

        result = make_invoker(handler).invoke(api("GET", "/api/status"), NODE, {})
        assert result.success
        assert result.status_code == 200
        assert result.data == {"ok": True}

    def test_timeout(self, make_invoker):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = make_invoker(handler).invoke(api("GET", "/api/status"), NODE, {})
        assert not result.success
        assert result.error == {"message": "Timeout after 10 s"}

    def test_headers_sent(self):
        seen = {}

        def handler(request):
            seen["x-probe"] = request.headers.get("X-Probe")
            return httpx.Response(200)

        invoker = ApiInvoker(
            headers={"X-Probe": "stm"},
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        invoker.invoke(api("GET", "/api/status"), NODE, {})
        assert seen["x-probe"] == "stm"
