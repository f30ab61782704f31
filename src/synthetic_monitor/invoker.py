"""Invocation of configured APIs against individual nodes."""

import logging
import time
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from synthetic_monitor.errors import ProbeFailure
from synthetic_monitor.models import (
    ApiDefinition,
    InvocationResult,
    Node,
    ParameterType,
)
from synthetic_monitor.parameters import ParameterValue

logger = logging.getLogger(__name__)


class ApiInvoker:
    """Perform an API call on a node and report status, timing and payload.

    Ordinary HTTP and network failures never propagate out of :meth:`invoke`;
    they are returned as a failed result with status code 0.
    """

    # Methods that carry body parameters in a JSON body; others send them as query
    BODY_METHODS = ("POST", "PUT")

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize API invoker.

        Args:
            timeout_seconds: Network-layer timeout for each call.
            headers: Headers added to every request.
            client: Optional preconfigured HTTP client.
        """
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {}
        self._client = client or httpx.Client()

    def build_request(
        self,
        api: ApiDefinition,
        node: Node,
        parameters: Mapping[str, ParameterValue],
    ) -> httpx.Request:
        """Build the HTTP request for an API call on a node.

        Path parameters replace ``{name}`` placeholders in the URI, query
        parameters go to the query string, and body parameters go to a JSON
        body (or the query string for methods without a body).
        """
        method = api.method.upper()
        path = api.uri
        query: dict[str, str] = {}
        body: dict[str, Any] = {}

        for name, value in parameters.items():
            definition = api.get_parameter(name)
            param_type = definition.type if definition else ParameterType.QUERY

            if param_type == ParameterType.PATH:
                path = path.replace(f"{{{name}}}", quote(value.as_query(), safe=""))
            elif param_type == ParameterType.BODY and method in self.BODY_METHODS:
                body[name] = value.as_json()
            else:
                query[name] = value.as_query()

        return self._client.build_request(
            method,
            f"http://{node.address}{path}",
            params=query or None,
            json=body if method in self.BODY_METHODS else None,
            headers=self.headers,
            timeout=self.timeout_seconds,
        )

    def invoke(
        self,
        api: ApiDefinition,
        node: Node,
        parameters: Mapping[str, ParameterValue],
    ) -> InvocationResult:
        """Call an API on a node.

        Args:
            api: API definition to call.
            node: Node to call it on.
            parameters: Validated parameter values.

        Returns:
            InvocationResult; ``success`` is True for 2xx responses.
        """
        try:
            request = self.build_request(api, node, parameters)
        except httpx.InvalidURL as e:
            logger.warning(f"Cannot build request for node {node.name}: {e}")
            return InvocationResult(
                success=False,
                status_code=0,
                response_time_ms=0,
                error={"message": f"Invalid URL: {e}"},
            )
        logger.debug(f"Invoking {request.method} {request.url} on node {node.name}")

        start = time.perf_counter()
        try:
            response = self._send(request)
        except ProbeFailure as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.info(f"API {api.name} on node {node.name} failed: {e.message}")
            return InvocationResult(
                success=False,
                status_code=0,
                response_time_ms=elapsed,
                error={"message": e.message},
            )
        elapsed = int((time.perf_counter() - start) * 1000)

        return InvocationResult(
            success=response.is_success,
            status_code=response.status_code,
            response_time_ms=elapsed,
            data=self._decode_body(response),
        )

    def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            return self._client.send(request, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise ProbeFailure(f"Timeout after {self.timeout_seconds:g} s") from e
        except httpx.HTTPError as e:
            raise ProbeFailure(f"Request failed: {e}") from e

    @staticmethod
    def _decode_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def close(self) -> None:
        self._client.close()
