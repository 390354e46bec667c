"""Map producer-specific finding shapes (OCSF, ASFF) to RawFinding field names."""

from typing import Any

# RawFinding field names we map into.
RAWFINDING_KEYS = frozenset({
    "finding_id", "timestamp", "title", "description", "severity", "status",
    "account_id", "region", "service", "product_arn", "resources", "remediation",
    "producer", "raw_payload",
})

# RawFinding fields that hold plain text.
_TEXT_KEYS = RAWFINDING_KEYS - {"timestamp", "resources", "remediation", "raw_payload"}

PRODUCER_OCSF = "ocsf"
PRODUCER_ASFF = "asff"
PRODUCER_GENERIC = "generic"

# Generic alias: payload field name -> RawFinding field name.
# Severity/status label aliases are handled in the normalizer.
GENERIC_ALIASES: dict[str, str] = {
    "id": "finding_id",
    "uid": "finding_id",
    "finding_uid": "finding_id",
    "time": "timestamp",
    "created_at": "timestamp",
    "updated_at": "timestamp",
    "name": "title",
    "desc": "description",
    "message": "description",
    "severity_label": "severity",
    "workflow_status": "status",
    "account": "account_id",
    "aws_account_id": "account_id",
    "product": "service",
    "product_name": "service",
    "source": "service",
}

# ASFF Severity.Normalized (0-100) bands -> label, used when Severity.Label is absent.
_ASFF_NORMALIZED_BANDS: list[tuple[tuple[int, int], str]] = [
    ((90, 100), "CRITICAL"),
    ((70, 89), "HIGH"),
    ((40, 69), "MEDIUM"),
    ((1, 39), "LOW"),
    ((0, 0), "INFORMATIONAL"),
]


def _is_ocsf_like(obj: dict[str, Any]) -> bool:
    """Heuristic: OCSF findings carry finding_info and/or metadata.product with class_uid."""
    return "finding_info" in obj or ("metadata" in obj and "class_uid" in obj)


def _is_asff_like(obj: dict[str, Any]) -> bool:
    """Heuristic: ASFF findings use PascalCase SchemaVersion/ProductArn/AwsAccountId."""
    return "SchemaVersion" in obj or "ProductArn" in obj or "AwsAccountId" in obj


def _str_or_none(value: Any) -> str | None:
    """Return string or None; coerce non-str scalars to str."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, str):
        return value.strip() or None
    return str(value).strip() or None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _ocsf_timestamp(obj: dict[str, Any]) -> Any:
    """Prefer the ISO variants; fall back to epoch-millisecond integers."""
    info = _dict(obj.get("finding_info"))
    for candidate in (
        obj.get("time_dt"),
        info.get("modified_time_dt"),
        info.get("created_time_dt"),
        obj.get("time"),
        info.get("modified_time"),
        info.get("created_time"),
    ):
        if candidate is not None and candidate != "":
            return candidate
    return None


def map_ocsf_to_raw(obj: dict[str, Any]) -> dict[str, Any]:
    """Map an OCSF (Security Hub CSPM v2) finding to a RawFinding-shaped dict."""
    info = _dict(obj.get("finding_info"))
    cloud = _dict(obj.get("cloud"))
    product = _dict(_dict(obj.get("metadata")).get("product"))
    out: dict[str, Any] = {
        "finding_id": _str_or_none(info.get("uid")) or _str_or_none(_dict(obj.get("metadata")).get("uid")),
        "timestamp": _ocsf_timestamp(obj),
        "title": _str_or_none(info.get("title")),
        "description": _str_or_none(info.get("desc")),
        "severity": _str_or_none(obj.get("severity")) or _str_or_none(obj.get("severity_id")),
        "status": _str_or_none(obj.get("status")) or _str_or_none(obj.get("status_id")),
        "account_id": _str_or_none(_dict(cloud.get("account")).get("uid")),
        "region": _str_or_none(cloud.get("region")),
        "service": _str_or_none(product.get("name")),
        "product_arn": _str_or_none(product.get("uid")),
    }
    out["resources"] = [
        {"uid": _str_or_none(r.get("uid")), "type": _str_or_none(r.get("type"))}
        for r in _list(obj.get("resources"))
        if isinstance(r, dict)
    ]
    remediation = _dict(obj.get("remediation"))
    desc = _str_or_none(remediation.get("desc"))
    entries = [
        {"description": desc, "url": _str_or_none(ref)}
        for ref in _list(remediation.get("references"))
    ]
    if not entries and desc:
        entries = [{"description": desc, "url": None}]
    out["remediation"] = entries
    out["producer"] = PRODUCER_OCSF
    out["raw_payload"] = dict(obj)
    return _merge_rawfinding_shape(out, obj)


def _asff_severity(severity: dict[str, Any]) -> str | None:
    label = _str_or_none(severity.get("Label"))
    if label:
        return label
    normalized = severity.get("Normalized")
    if isinstance(normalized, (int, float)) and not isinstance(normalized, bool):
        score = int(normalized)
        for (lo, hi), band in _ASFF_NORMALIZED_BANDS:
            if lo <= score <= hi:
                return band
    return None


def map_asff_to_raw(obj: dict[str, Any]) -> dict[str, Any]:
    """Map an ASFF (Security Hub classic) finding to a RawFinding-shaped dict."""
    product_fields = _dict(obj.get("ProductFields"))
    out: dict[str, Any] = {
        "finding_id": _str_or_none(obj.get("Id")),
        "timestamp": _str_or_none(obj.get("UpdatedAt")) or _str_or_none(obj.get("CreatedAt")),
        "title": _str_or_none(obj.get("Title")),
        "description": _str_or_none(obj.get("Description")),
        "severity": _asff_severity(_dict(obj.get("Severity"))),
        "status": _str_or_none(_dict(obj.get("Workflow")).get("Status"))
        or _str_or_none(obj.get("WorkflowState")),
        "account_id": _str_or_none(obj.get("AwsAccountId")),
        "region": _str_or_none(obj.get("Region")),
        "service": _str_or_none(obj.get("ProductName"))
        or _str_or_none(product_fields.get("aws/securityhub/ProductName")),
        "product_arn": _str_or_none(obj.get("ProductArn")),
    }
    out["resources"] = [
        {"uid": _str_or_none(r.get("Id")), "type": _str_or_none(r.get("Type"))}
        for r in _list(obj.get("Resources"))
        if isinstance(r, dict)
    ]
    recommendation = _dict(_dict(obj.get("Remediation")).get("Recommendation"))
    if recommendation:
        out["remediation"] = [
            {
                "description": _str_or_none(recommendation.get("Text")),
                "url": _str_or_none(recommendation.get("Url")),
            }
        ]
    else:
        out["remediation"] = []
    out["producer"] = PRODUCER_ASFF
    out["raw_payload"] = dict(obj)
    return _merge_rawfinding_shape(out, obj)


def _merge_rawfinding_shape(out: dict[str, Any], obj: dict[str, Any]) -> dict[str, Any]:
    """Keep only RawFinding keys with a value; fill remaining gaps from obj via aliases."""
    result: dict[str, Any] = {}
    for k, v in out.items():
        if k in RAWFINDING_KEYS and v is not None:
            result[k] = v
    for alias, target in GENERIC_ALIASES.items():
        if target in result:
            continue
        if alias in obj and obj[alias] is not None:
            val = _str_or_none(obj[alias]) if target != "timestamp" else obj[alias]
            if val is not None:
                result[target] = val
    return result


def _generic_resources(items: Any) -> list[dict[str, Any]]:
    """Accept resource entries keyed uid, id or Id (or bare id strings)."""
    out: list[dict[str, Any]] = []
    for item in _list(items):
        if isinstance(item, dict):
            uid = item.get("uid") or item.get("id") or item.get("Id")
            out.append({"uid": _str_or_none(uid), "type": _str_or_none(item.get("type") or item.get("Type"))})
        else:
            out.append({"uid": _str_or_none(item), "type": None})
    return out


def _generic_remediation(items: Any) -> list[dict[str, Any]]:
    """Accept remediation entries keyed url/Url (or bare URL strings)."""
    if isinstance(items, dict):
        items = [items]
    out: list[dict[str, Any]] = []
    for item in _list(items):
        if isinstance(item, dict):
            out.append(
                {
                    "description": _str_or_none(item.get("description") or item.get("desc") or item.get("Text")),
                    "url": _str_or_none(item.get("url") or item.get("Url")),
                }
            )
        else:
            out.append({"description": None, "url": _str_or_none(item)})
    return out


def apply_generic_aliases(obj: dict[str, Any]) -> dict[str, Any]:
    """
    Map known alias keys to RawFinding field names. Use when no producer schema is detected.
    Nested structures other than resources/remediation lists are ignored; text fields of
    any other type are coerced to str or dropped.
    """
    result: dict[str, Any] = {}
    for key, value in obj.items():
        if key not in RAWFINDING_KEYS or key == "raw_payload" or value is None:
            continue
        if key in _TEXT_KEYS:
            text = _str_or_none(value)
            if text is not None:
                result[key] = text
        else:
            result[key] = value
    if "resources" in result:
        result["resources"] = _generic_resources(result["resources"])
    if "remediation" in result:
        result["remediation"] = _generic_remediation(result["remediation"])
    for alias, target in GENERIC_ALIASES.items():
        if target in result or alias not in obj:
            continue
        value = obj[alias]
        if target == "timestamp":
            if value is not None and value != "":
                result[target] = value
            continue
        text = _str_or_none(value)
        if text is not None:
            result[target] = text
    result.setdefault("producer", PRODUCER_GENERIC)
    result["raw_payload"] = dict(obj)
    return result


def normalize_shape_to_rawfinding(obj: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a producer payload (any dict) to a dict suitable for RawFinding.model_validate.
    Uses schema heuristics when possible, otherwise generic aliases. Preserves original in raw_payload.
    """
    if not isinstance(obj, dict):
        return obj
    if _is_ocsf_like(obj):
        return map_ocsf_to_raw(obj)
    if _is_asff_like(obj):
        return map_asff_to_raw(obj)
    return apply_generic_aliases(obj)
