"""Email node.

Sends through an HTTP email service when ``EMAIL_SERVICE_URL`` is set;
otherwise the message is only logged. Delivery failures are reported in
the result, not raised.
"""

from typing import Any

import httpx
import structlog

from nodes.base_node import BaseNode, NodeKind
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode

logger = structlog.get_logger(__name__)


class EmailNode(BaseNode):
    """Send an email.

    Config:
        to / recipient: Recipient address (templated)
        subject: Subject line (templated)
        body / message: Plain-text body (templated)
        html: Optional HTML body (templated)
    """

    kind = NodeKind.EMAIL
    display_name = "Send Email"
    description = "Send an email through the configured email service"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        to = self.resolve(config.get("to") or config.get("recipient") or "", context)
        subject = self.resolve(config.get("subject") or "", context)
        body = self.resolve(config.get("body") or config.get("message") or "", context)
        html = self.resolve(config.get("html"), context)

        service_url = self.settings.EMAIL_SERVICE_URL
        if not service_url:
            logger.info(
                "Email not sent, no email service configured",
                node_id=node.id,
                to=to,
                subject=subject,
                body_preview=str(body)[:100],
            )
            return {"logged": True, "to": to, "subject": subject, "body": body}

        headers = {"Content-Type": "application/json"}
        if self.settings.EMAIL_SERVICE_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.EMAIL_SERVICE_API_KEY}"

        payload = {"to": to, "subject": subject, "body": body}
        if html is not None:
            payload["html"] = html

        try:
            async with self.services.http_client() as client:
                response = await client.post(service_url, json=payload, headers=headers)
            if not response.is_success:
                raise RuntimeError(f"Email service returned {response.status_code}")
        except (httpx.HTTPError, RuntimeError) as e:
            logger.error("Email send failed", node_id=node.id, to=to, error=str(e))
            return {"sent": False, "error": str(e) or type(e).__name__, "to": to, "subject": subject}

        logger.info("Email sent", node_id=node.id, to=to, subject=subject)
        return {"sent": True, "to": to, "subject": subject}


EMAIL_NODE_TYPES = {
    NodeKind.EMAIL: EmailNode,
}
