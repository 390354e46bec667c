"""Unit tests for app.services.pipeline: event parsing, filtering, credential lookup, and failure reporting."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

import httpx

from app.schemas.findings import FindingStatus, Severity
from app.schemas.policy import NotificationPolicy
from app.services.dispatcher import SlackDispatcher
from app.services.normalize import MalformedEventError
from app.services.pipeline import (
    MAX_FINDINGS_PER_EVENT,
    NotificationDeliveryError,
    parse_event,
    process_event,
    summarize_finding,
)
from app.services.secrets import SecretUnavailableError, StaticSecretProvider


def _settings() -> MagicMock:
    settings = MagicMock()
    settings.SEVERITY_LABEL_ALIASES = {}
    settings.STATUS_LABEL_ALIASES = {}
    settings.SLACK_TOKEN_SECRET_NAME = "slack-token"
    return settings


def _policy() -> NotificationPolicy:
    return NotificationPolicy(
        severities=frozenset({Severity.HIGH, Severity.CRITICAL}),
        statuses=frozenset({FindingStatus.NEW}),
        default_channel="#aws-security",
    )


def _finding(finding_id: str = "f-1", severity: str = "CRITICAL", status: str = "NEW") -> dict:
    return {
        "SchemaVersion": "2018-10-08",
        "Id": finding_id,
        "ProductName": "GuardDuty",
        "AwsAccountId": "123456789012",
        "Region": "us-east-1",
        "UpdatedAt": "2025-03-01T12:00:00Z",
        "Title": "EC2 instance communicating with a known C2 server",
        "Severity": {"Label": severity},
        "Workflow": {"Status": status},
        "Resources": [{"Type": "AwsEc2Instance", "Id": "i-abc"}],
    }


def _event(*findings: dict) -> dict:
    return {
        "version": "0",
        "id": "evt-1",
        "detail-type": "Security Hub Findings - Imported",
        "source": "aws.securityhub",
        "account": "123456789012",
        "region": "us-east-1",
        "detail": {"findings": list(findings)},
    }


def _ok() -> httpx.Response:
    return httpx.Response(200, json={"ok": True})


def _dispatcher(responses) -> tuple[SlackDispatcher, AsyncMock]:  # type: ignore[no-untyped-def]
    transport = AsyncMock()
    transport.post.side_effect = responses
    dispatcher = SlackDispatcher(_policy(), "https://slack.test/api", transport=transport, sleep=AsyncMock())
    return dispatcher, transport


class TestParseEvent(unittest.TestCase):
    def test_eventbridge_envelope(self) -> None:
        event_id, findings = parse_event(_event(_finding()))
        self.assertEqual(event_id, "evt-1")
        self.assertEqual(len(findings), 1)

    def test_bare_list_and_single_finding(self) -> None:
        self.assertEqual(parse_event([_finding()])[1][0]["Id"], "f-1")
        self.assertEqual(parse_event(_finding())[1][0]["Id"], "f-1")

    def test_envelope_without_findings(self) -> None:
        with self.assertRaises(MalformedEventError):
            parse_event({"id": "evt-1", "detail": {}})

    def test_scalar_event(self) -> None:
        with self.assertRaises(MalformedEventError):
            parse_event("not an event")


class TestProcessEvent(unittest.TestCase):
    """End-to-end pipeline with a fake transport and a static secret provider."""

    def test_eligible_finding_delivered(self) -> None:
        dispatcher, transport = _dispatcher([_ok()])
        provider = StaticSecretProvider({"slack-token": "xoxb-1"})
        report = asyncio.run(process_event(_event(_finding()), _policy(), _settings(), provider, dispatcher))
        self.assertEqual(report.event_id, "evt-1")
        self.assertEqual(report.delivered_count, 1)
        self.assertEqual(report.results[0].state, "delivered")
        self.assertEqual(report.results[0].outcome.channel, "#aws-security")
        self.assertEqual(transport.post.await_args.args[2], "xoxb-1")

    def test_low_severity_never_reaches_dispatcher_or_secret_store(self) -> None:
        dispatcher = MagicMock(spec=SlackDispatcher)
        provider = MagicMock()
        provider.get_secret = AsyncMock()
        report = asyncio.run(
            process_event(_event(_finding(severity="LOW")), _policy(), _settings(), provider, dispatcher)
        )
        self.assertEqual(report.filtered_count, 1)
        self.assertEqual(report.results[0].state, "filtered_out")
        self.assertIsNone(report.results[0].outcome)
        dispatcher.deliver.assert_not_called()
        provider.get_secret.assert_not_called()

    def test_credential_fetched_once_per_event(self) -> None:
        dispatcher, transport = _dispatcher([_ok(), _ok()])
        provider = MagicMock()
        provider.get_secret = AsyncMock(return_value="xoxb-1")
        report = asyncio.run(
            process_event(
                _event(_finding("f-1"), _finding("f-2")), _policy(), _settings(), provider, dispatcher
            )
        )
        self.assertEqual(report.delivered_count, 2)
        provider.get_secret.assert_awaited_once_with("slack-token")
        self.assertEqual(transport.post.await_count, 2)

    def test_malformed_finding_fails_before_any_send(self) -> None:
        dispatcher, transport = _dispatcher([_ok()])
        bad = _finding("f-2")
        del bad["UpdatedAt"]
        provider = StaticSecretProvider({"slack-token": "xoxb-1"})
        with self.assertRaises(MalformedEventError) as ctx:
            asyncio.run(process_event(_event(_finding("f-1"), bad), _policy(), _settings(), provider, dispatcher))
        self.assertEqual(ctx.exception.missing, ["timestamp"])
        transport.post.assert_not_called()

    def test_too_many_findings(self) -> None:
        dispatcher, _ = _dispatcher([])
        findings = [_finding(f"f-{i}") for i in range(MAX_FINDINGS_PER_EVENT + 1)]
        with self.assertRaises(MalformedEventError):
            asyncio.run(
                process_event(findings, _policy(), _settings(), StaticSecretProvider({}), dispatcher)
            )

    def test_secret_unavailable_propagates(self) -> None:
        dispatcher, transport = _dispatcher([_ok()])
        with self.assertRaises(SecretUnavailableError):
            asyncio.run(
                process_event(_event(_finding()), _policy(), _settings(), StaticSecretProvider({}), dispatcher)
            )
        transport.post.assert_not_called()

    def test_rejected_delivery_raises_with_report(self) -> None:
        dispatcher, _ = _dispatcher([httpx.Response(200, json={"ok": False, "error": "channel_not_found"}), _ok()])
        provider = StaticSecretProvider({"slack-token": "xoxb-1"})
        with self.assertRaises(NotificationDeliveryError) as ctx:
            asyncio.run(
                process_event(
                    _event(_finding("f-1"), _finding("f-2")), _policy(), _settings(), provider, dispatcher
                )
            )
        report = ctx.exception.report
        self.assertEqual([r.state for r in report.results], ["rejected", "delivered"])
        self.assertEqual(report.failed[0].finding_id, "f-1")
        self.assertIn("channel_not_found", ctx.exception.message)

    def test_unknown_severity_is_filtered_by_default(self) -> None:
        dispatcher, transport = _dispatcher([])
        provider = StaticSecretProvider({"slack-token": "xoxb-1"})
        report = asyncio.run(
            process_event(_event(_finding(severity="medium-ish")), _policy(), _settings(), provider, dispatcher)
        )
        self.assertEqual(report.results[0].severity, "Unknown")
        self.assertEqual(report.results[0].state, "filtered_out")
        transport.post.assert_not_called()

    def test_auth_failure_skips_remaining_sends(self) -> None:
        dispatcher, transport = _dispatcher([httpx.Response(401), _ok(), _ok()])
        provider = StaticSecretProvider({"slack-token": "xoxb-revoked"})
        event = _event(_finding("f-1"), _finding("f-2"), _finding("f-3"))
        with self.assertRaises(NotificationDeliveryError) as ctx:
            asyncio.run(process_event(event, _policy(), _settings(), provider, dispatcher))
        results = ctx.exception.report.results
        self.assertEqual([r.state for r in results], ["rejected", "rejected", "rejected"])
        self.assertEqual([r.outcome.attempts for r in results], [1, 0, 0])
        self.assertEqual({r.outcome.reason for r in results}, {"authentication_failed"})
        self.assertEqual(transport.post.await_count, 1)

    def test_slack_invalid_auth_skips_remaining_sends(self) -> None:
        dispatcher, transport = _dispatcher([httpx.Response(200, json={"ok": False, "error": "invalid_auth"}), _ok()])
        provider = StaticSecretProvider({"slack-token": "xoxb-bad"})
        with self.assertRaises(NotificationDeliveryError):
            asyncio.run(
                process_event(
                    _event(_finding("f-1"), _finding("f-2")), _policy(), _settings(), provider, dispatcher
                )
            )
        self.assertEqual(transport.post.await_count, 1)


class TestSummarizeLooseTypes(unittest.TestCase):
    """Findings with an id and timestamp normalize whatever the types of optional fields."""

    def test_numeric_and_nested_optional_fields(self) -> None:
        summary = summarize_finding({
            "id": "f-9",
            "time": "2025-03-01T00:00:00Z",
            "severity": {"label": "High"},
            "region": 1,
            "service": {"name": "GuardDuty"},
            "status": 1,
        })
        self.assertEqual(summary.finding_id, "f-9")
        self.assertEqual(summary.severity, Severity.UNKNOWN)
        self.assertEqual(summary.region, "1")
        self.assertEqual(summary.service, "Unknown")
        self.assertEqual(summary.status, FindingStatus.NEW)

    def test_numeric_severity_reads_as_severity_id(self) -> None:
        summary = summarize_finding({"id": "f-9", "time": "2025-03-01T00:00:00Z", "severity": 4})
        self.assertEqual(summary.severity, Severity.HIGH)

    def test_unmapped_numeric_severity_is_unknown(self) -> None:
        summary = summarize_finding({"id": "f-9", "time": "2025-03-01T00:00:00Z", "severity": 4.5})
        self.assertEqual(summary.severity, Severity.UNKNOWN)

    def test_non_dict_raw_payload_is_replaced(self) -> None:
        summary = summarize_finding(
            {"id": "f-9", "time": "2025-03-01T00:00:00Z", "raw_payload": "x", "title": ["a"]}
        )
        self.assertEqual(summary.title, "")
