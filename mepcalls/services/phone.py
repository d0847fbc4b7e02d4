"""Phone number normalization shared by ingest, exclusions and reports."""
import re

COUNTRY_CODE = "91"
LOCAL_NUMBER_LENGTH = 10

_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_phone(value: str | None) -> str:
    """Strip separators and an Indian country prefix.

    ``+91 98765-43210``, ``919876543210`` and ``9876543210`` all normalize to
    ``9876543210``. A bare ``91`` prefix is only dropped when the number is
    longer than ten digits before stripping, so ``9123456789`` is kept.
    """
    if not value:
        return ""
    normalized = _SEPARATORS.sub("", value)
    if normalized.startswith(f"+{COUNTRY_CODE}"):
        return normalized[len(COUNTRY_CODE) + 1:]
    if normalized.startswith(COUNTRY_CODE) and len(normalized) > LOCAL_NUMBER_LENGTH:
        return normalized[len(COUNTRY_CODE):]
    return normalized


def same_number(left: str | None, right: str | None) -> bool:
    return normalize_phone(left) == normalize_phone(right)
