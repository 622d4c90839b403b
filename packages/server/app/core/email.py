"""
Outbound email.

Templates are addressed as ``{template_name: variables}``. The ``ses``
backend sends through AWS SES (v2) stored templates; the ``console`` backend
only logs the message and is the default for local development.
"""

from __future__ import annotations

import asyncio
import json
from functools import lru_cache
from typing import Any, Protocol

import boto3
import structlog

from app.core.config import get_settings

log = structlog.get_logger()

INVITATION_TEMPLATE = "organizations/invitation"


class EmailSender(Protocol):
    async def send_email_with_template(
        self, *, to_address: str, template: dict[str, dict[str, Any]]
    ) -> None: ...


def _unpack_template(template: dict[str, dict[str, Any]]) -> tuple[str, dict[str, Any]]:
    if len(template) != 1:
        raise ValueError("Exactly one template must be given")
    (name, variables), = template.items()
    return name, variables


def ses_template_name(name: str) -> str:
    """SES template names only allow letters, digits, '-' and '_'."""
    return name.replace("/", "-")


class ConsoleEmailSender:
    """Logs emails instead of sending them."""

    async def send_email_with_template(
        self, *, to_address: str, template: dict[str, dict[str, Any]]
    ) -> None:
        name, variables = _unpack_template(template)
        log.info("email.console", to=to_address, template=name, variables=variables)


class SESEmailSender:
    """AWS SES v2 sender. boto3 is blocking, so calls run in a worker thread."""

    def __init__(self, from_address: str, region_name: str, client: Any = None):
        self.from_address = from_address
        self.client = client or boto3.client("sesv2", region_name=region_name)

    async def send_email_with_template(
        self, *, to_address: str, template: dict[str, dict[str, Any]]
    ) -> None:
        name, variables = _unpack_template(template)
        response = await asyncio.to_thread(
            self.client.send_email,
            FromEmailAddress=self.from_address,
            Destination={"ToAddresses": [to_address]},
            Content={
                "Template": {
                    "TemplateName": ses_template_name(name),
                    "TemplateData": json.dumps(variables),
                }
            },
        )
        log.info(
            "email.sent",
            template=name,
            message_id=response.get("MessageId"),
        )


@lru_cache
def get_email_sender() -> EmailSender:
    settings = get_settings()
    if settings.email_backend == "ses":
        return SESEmailSender(settings.email_from_address, settings.aws_region)
    return ConsoleEmailSender()
