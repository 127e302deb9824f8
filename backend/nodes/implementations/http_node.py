"""HTTP request and outbound webhook nodes.

Both resolve ``{{ }}`` templates in url, headers and body before sending.
Transport errors (DNS, connection refused, timeouts) propagate to the
executor; non-2xx responses do not raise and are reported via ``ok``.
"""

import json
from typing import Any, Dict, Optional

import httpx
import structlog

from core.exceptions import NodeConfigurationError
from nodes.base_node import BaseNode, NodeKind
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode

logger = structlog.get_logger(__name__)

_NO_BODY_METHODS = ("GET", "HEAD")


def _parse_response(response: httpx.Response) -> Any:
    """JSON body when the server says so, text otherwise."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except json.JSONDecodeError:
            return response.text
    return response.text


def _request_headers(headers: Any) -> Dict[str, str]:
    merged = {"Content-Type": "application/json"}
    if isinstance(headers, dict):
        merged.update({str(k): str(v) for k, v in headers.items()})
    return merged


class HttpRequestNode(BaseNode):
    """Make an HTTP request.

    Config:
        url: Target URL (required)
        method: HTTP method (default: GET)
        headers: Dict of HTTP headers; Content-Type defaults to application/json
        body: Request body, sent for methods other than GET/HEAD.
            Dicts and lists are JSON-encoded, strings are sent as-is.

    Returns:
        {"status", "statusText", "ok", "data"}
    """

    kind = NodeKind.HTTP
    display_name = "HTTP Request"
    description = "Make HTTP requests to APIs and web services"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        url = self.resolve(config.get("url") or "", context)
        if not url:
            raise NodeConfigurationError("HTTP node requires a URL")

        method = str(config.get("method") or "GET").upper()
        headers = _request_headers(self.resolve(config.get("headers") or {}, context))
        body = self.resolve(config.get("body"), context)

        content: Optional[bytes] = None
        if body not in (None, "") and method not in _NO_BODY_METHODS:
            content = body.encode() if isinstance(body, str) else json.dumps(body).encode()

        logger.info("HTTP request", method=method, url=url, node_id=node.id)
        async with self.services.http_client() as client:
            response = await client.request(method, url, headers=headers, content=content)

        return {
            "status": response.status_code,
            "statusText": response.reason_phrase,
            "ok": response.is_success,
            "data": _parse_response(response),
        }

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["url"],
            "properties": {
                "url": {"type": "string"},
                "method": {"type": "string", "enum": ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]},
                "headers": {"type": "object"},
                "body": {},
            },
        }


class WebhookNode(BaseNode):
    """Send the run's data to an outbound webhook.

    Config:
        url: Target URL (required)
        method: HTTP method (default: POST)
        headers: Dict of HTTP headers
        payload / body: What to send; defaults to the whole variable store

    Returns:
        {"status", "ok", "data"}
    """

    kind = NodeKind.WEBHOOK
    display_name = "Webhook"
    description = "Post workflow data to an external webhook"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        url = self.resolve(config.get("url") or "", context)
        if not url:
            raise NodeConfigurationError("Webhook node requires a URL")

        method = str(config.get("method") or "POST").upper()
        headers = _request_headers(self.resolve(config.get("headers") or {}, context))

        payload = config.get("payload") or config.get("body") or context.variables
        payload = self.resolve(payload, context)

        content: Optional[bytes] = None
        if method != "GET":
            content = json.dumps(payload, default=str).encode()

        logger.info("Webhook call", method=method, url=url, node_id=node.id)
        async with self.services.http_client() as client:
            response = await client.request(method, url, headers=headers, content=content)

        return {
            "status": response.status_code,
            "ok": response.is_success,
            "data": _parse_response(response),
        }


HTTP_NODE_TYPES = {
    NodeKind.HTTP: HttpRequestNode,
    NodeKind.WEBHOOK: WebhookNode,
}
