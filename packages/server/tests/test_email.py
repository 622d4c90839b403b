"""
Tests for outbound email senders and the fire-and-forget dispatcher.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from app.core import dispatch
from app.core.email import (
    INVITATION_TEMPLATE,
    ConsoleEmailSender,
    SESEmailSender,
    get_email_sender,
    ses_template_name,
)

TEMPLATE = {INVITATION_TEMPLATE: {"organizationName": "Acme", "link": "https://app.example.com/organization/1"}}


# ---------------------------------------------------------------------------
# Senders
# ---------------------------------------------------------------------------

class TestConsoleSender:
    @pytest.mark.asyncio
    async def test_logs_instead_of_sending(self):
        with patch("app.core.email.log") as log:
            await ConsoleEmailSender().send_email_with_template(
                to_address="a@example.com", template=TEMPLATE
            )
        log.info.assert_called_once()
        args, kwargs = log.info.call_args
        assert args == ("email.console",)
        assert kwargs["to"] == "a@example.com"
        assert kwargs["template"] == INVITATION_TEMPLATE

    @pytest.mark.asyncio
    async def test_exactly_one_template(self):
        sender = ConsoleEmailSender()
        with pytest.raises(ValueError):
            await sender.send_email_with_template(to_address="a@example.com", template={})
        with pytest.raises(ValueError):
            await sender.send_email_with_template(
                to_address="a@example.com", template={"one": {}, "two": {}}
            )

    def test_default_backend_is_console(self):
        assert isinstance(get_email_sender(), ConsoleEmailSender)


class TestSESSender:
    def test_template_name(self):
        assert ses_template_name("organizations/invitation") == "organizations-invitation"

    @pytest.mark.asyncio
    async def test_sends_stored_template(self):
        client = MagicMock()
        client.send_email.return_value = {"MessageId": "msg-1"}
        sender = SESEmailSender("noreply@example.com", "eu-west-1", client=client)

        await sender.send_email_with_template(to_address="Jo <jo@example.com>", template=TEMPLATE)

        client.send_email.assert_called_once()
        kwargs = client.send_email.call_args.kwargs
        assert kwargs["FromEmailAddress"] == "noreply@example.com"
        assert kwargs["Destination"] == {"ToAddresses": ["Jo <jo@example.com>"]}
        template = kwargs["Content"]["Template"]
        assert template["TemplateName"] == "organizations-invitation"
        assert json.loads(template["TemplateData"]) == TEMPLATE[INVITATION_TEMPLATE]

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self):
        client = MagicMock()
        client.send_email.side_effect = RuntimeError("throttled")
        sender = SESEmailSender("noreply@example.com", "eu-west-1", client=client)
        with pytest.raises(RuntimeError):
            await sender.send_email_with_template(to_address="a@example.com", template=TEMPLATE)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class TestDispatch:
    @pytest.mark.asyncio
    async def test_caller_does_not_wait(self):
        release = asyncio.Event()
        done = []

        async def job():
            await release.wait()
            done.append(True)

        dispatch.dispatch(job(), name="slow")
        assert dispatch.pending_count() == 1
        assert done == []

        release.set()
        await dispatch.drain(timeout=5)
        assert done == [True]
        assert dispatch.pending_count() == 0

    @pytest.mark.asyncio
    async def test_failure_is_logged(self):
        async def boom():
            raise RuntimeError("unreachable")

        with patch("app.core.dispatch.log") as log:
            dispatch.dispatch(boom(), name="invitation:org-1")
            await dispatch.drain(timeout=5)

        log.error.assert_called_once()
        args, kwargs = log.error.call_args
        assert args == ("dispatch.failed",)
        assert kwargs["task"] == "invitation:org-1"
        assert "unreachable" in kwargs["error"]

    @pytest.mark.asyncio
    async def test_drain_cancels_stragglers(self):
        async def forever():
            await asyncio.Event().wait()

        with patch("app.core.dispatch.log") as log:
            task = dispatch.dispatch(forever(), name="stuck")
            await dispatch.drain(timeout=0.01)
            await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert dispatch.pending_count() == 0
        log.warning.assert_any_call("dispatch.drain_timeout", cancelled=1)
        log.warning.assert_any_call("dispatch.cancelled", task="stuck")

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self):
        await dispatch.drain(timeout=0.01)
        assert dispatch.pending_count() == 0
