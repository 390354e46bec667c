"""Unit tests for app.services.producer_mappers: OCSF, ASFF and generic payloads to RawFinding."""

import unittest
from datetime import datetime, timezone

from app.schemas.findings import FindingStatus, RawFinding, Severity
from app.services.normalize import normalize_finding
from app.services.producer_mappers import (
    PRODUCER_ASFF,
    PRODUCER_GENERIC,
    PRODUCER_OCSF,
    normalize_shape_to_rawfinding,
)


def _ocsf_finding(**overrides: object) -> dict:
    """OCSF finding as emitted in 'Findings Imported V2' events."""
    finding = {
        "activity_id": 1,
        "class_uid": 2004,
        "cloud": {
            "account": {"type": "AWS Account", "uid": "123456789012"},
            "provider": "AWS",
            "region": "us-east-1",
        },
        "finding_info": {
            "uid": "arn:aws:guardduty:us-east-1:123456789012:detector/d1/finding/f1",
            "title": "EC2 instance is querying a domain name of a remote host that is a known source of Drive-By download attacks.",
            "desc": "The EC2 instance i-0abc is querying a drive-by domain.",
            "created_time_dt": "2025-02-10T08:15:00Z",
        },
        "metadata": {
            "product": {
                "name": "GuardDuty",
                "uid": "arn:aws:securityhub:us-east-1::product/aws/guardduty",
                "vendor_name": "AWS",
            },
            "version": "1.5.0",
        },
        "resources": [
            {"uid": "i-0abc", "type": "AWS::EC2::Instance", "region": "us-east-1"},
            {"uid": "sg-123", "type": "AWS::EC2::SecurityGroup"},
        ],
        "remediation": {
            "desc": "Investigate the instance.",
            "references": ["https://docs.aws.amazon.com/guardduty/latest/ug/guardduty_finding-types-ec2.html"],
        },
        "severity": "High",
        "severity_id": 4,
        "status": "New",
        "status_id": 1,
        "time": 1739175300000,
        "vendor_attributes": {"severity": "High", "severity_id": 4},
    }
    finding.update(overrides)
    return finding


def _asff_finding(**overrides: object) -> dict:
    """ASFF finding as emitted in 'Security Hub Findings - Imported' events."""
    finding = {
        "SchemaVersion": "2018-10-08",
        "Id": "arn:aws:securityhub:us-east-1:123456789012:subscription/cis/1.4/finding/abc",
        "ProductArn": "arn:aws:securityhub:us-east-1::product/aws/securityhub",
        "ProductName": "Security Hub",
        "AwsAccountId": "123456789012",
        "Region": "us-east-1",
        "CreatedAt": "2025-02-01T00:00:00.000Z",
        "UpdatedAt": "2025-02-02T00:00:00.000Z",
        "Title": "S3 buckets should block public access",
        "Description": "Checks whether S3 buckets have bucket-level public access blocks.",
        "Severity": {"Label": "CRITICAL", "Normalized": 90},
        "Workflow": {"Status": "NEW"},
        "Resources": [{"Type": "AwsS3Bucket", "Id": "arn:aws:s3:::my-bucket"}],
        "Remediation": {
            "Recommendation": {
                "Text": "For information on how to correct this issue, consult the documentation.",
                "Url": "https://docs.aws.amazon.com/console/securityhub/S3.8/remediation",
            }
        },
        "SomeFutureField": {"nested": True},
    }
    finding.update(overrides)
    return finding


class TestOcsfMapping(unittest.TestCase):
    """OCSF payloads map to RawFinding fields."""

    def test_maps_core_fields(self) -> None:
        shaped = normalize_shape_to_rawfinding(_ocsf_finding())
        raw = RawFinding.model_validate(shaped)
        self.assertEqual(raw.producer, PRODUCER_OCSF)
        self.assertTrue(raw.finding_id.endswith("/finding/f1"))
        self.assertEqual(raw.severity, "High")
        self.assertEqual(raw.status, "New")
        self.assertEqual(raw.account_id, "123456789012")
        self.assertEqual(raw.region, "us-east-1")
        self.assertEqual(raw.service, "GuardDuty")
        self.assertEqual([r.uid for r in raw.resources], ["i-0abc", "sg-123"])
        self.assertEqual(len(raw.remediation), 1)
        self.assertIsNotNone(raw.raw_payload)

    def test_epoch_millis_timestamp_when_no_iso(self) -> None:
        finding = _ocsf_finding()
        finding["finding_info"] = {"uid": "f-2"}
        raw = RawFinding.model_validate(normalize_shape_to_rawfinding(finding))
        self.assertEqual(raw.timestamp, datetime.fromtimestamp(1739175300, tz=timezone.utc))

    def test_severity_id_fallback(self) -> None:
        finding = _ocsf_finding(severity=None, severity_id=5)
        summary = normalize_finding(RawFinding.model_validate(normalize_shape_to_rawfinding(finding)))
        self.assertEqual(summary.severity, Severity.CRITICAL)

    def test_remediation_without_references(self) -> None:
        finding = _ocsf_finding(remediation={"desc": "Rotate the key."})
        summary = normalize_finding(RawFinding.model_validate(normalize_shape_to_rawfinding(finding)))
        self.assertIsNone(summary.remediation_url)

    def test_sparse_ocsf_finding(self) -> None:
        finding = {"finding_info": {"uid": "f-3"}, "time_dt": "2025-02-10T08:15:00Z"}
        summary = normalize_finding(RawFinding.model_validate(normalize_shape_to_rawfinding(finding)))
        self.assertEqual(summary.finding_id, "f-3")
        self.assertEqual(summary.service, "Unknown")
        self.assertEqual(summary.resource_id, "")


class TestAsffMapping(unittest.TestCase):
    """ASFF payloads map to RawFinding fields; unknown fields are ignored."""

    def test_maps_core_fields(self) -> None:
        summary = normalize_finding(
            RawFinding.model_validate(normalize_shape_to_rawfinding(_asff_finding()))
        )
        self.assertEqual(summary.severity, Severity.CRITICAL)
        self.assertEqual(summary.status, FindingStatus.NEW)
        self.assertEqual(summary.service, "Security Hub")
        self.assertEqual(summary.resource_id, "arn:aws:s3:::my-bucket")
        self.assertEqual(
            summary.remediation_url,
            "https://docs.aws.amazon.com/console/securityhub/S3.8/remediation",
        )
        self.assertEqual(summary.timestamp.year, 2025)
        self.assertEqual(summary.timestamp.day, 2)

    def test_producer_tag(self) -> None:
        self.assertEqual(normalize_shape_to_rawfinding(_asff_finding())["producer"], PRODUCER_ASFF)

    def test_normalized_severity_band(self) -> None:
        finding = _asff_finding(Severity={"Normalized": 72})
        self.assertEqual(normalize_shape_to_rawfinding(finding)["severity"], "HIGH")

    def test_product_name_from_product_fields(self) -> None:
        finding = _asff_finding(ProductFields={"aws/securityhub/ProductName": "Inspector"})
        del finding["ProductName"]
        self.assertEqual(normalize_shape_to_rawfinding(finding)["service"], "Inspector")

    def test_workflow_state_fallback(self) -> None:
        finding = _asff_finding(WorkflowState="DEFERRED")
        del finding["Workflow"]
        summary = normalize_finding(RawFinding.model_validate(normalize_shape_to_rawfinding(finding)))
        self.assertEqual(summary.status, FindingStatus.SUPPRESSED)


class TestGenericMapping(unittest.TestCase):
    """Payloads of no known schema fall back to generic aliases."""

    def test_flat_payload(self) -> None:
        payload = {
            "id": "f-1",
            "timestamp": "2025-03-01T12:00:00Z",
            "title": "Test",
            "severity": "CRITICAL",
            "status": "NEW",
            "service": "GuardDuty",
            "resources": [{"id": "i-abc"}],
            "remediation": [],
        }
        shaped = normalize_shape_to_rawfinding(payload)
        self.assertEqual(shaped["producer"], PRODUCER_GENERIC)
        summary = normalize_finding(RawFinding.model_validate(shaped))
        self.assertEqual(summary.finding_id, "f-1")
        self.assertEqual(summary.resource_id, "i-abc")
        self.assertIsNone(summary.remediation_url)

    def test_non_dict_passthrough(self) -> None:
        self.assertEqual(normalize_shape_to_rawfinding([1, 2]), [1, 2])  # type: ignore[arg-type]
