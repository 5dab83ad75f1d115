from __future__ import annotations

from datetime import datetime, timezone


def _generate_code(prefix: str, now: datetime | None) -> str:
    # NNN is epoch-ms mod 1000; codes created in the same bucket on the same day collide.
    moment = now or datetime.now(timezone.utc)
    epoch_ms = int(moment.timestamp() * 1000)
    return f"{prefix}-{moment.strftime('%y%m%d')}-{epoch_ms % 1000:03d}"


def generate_admission_code(now: datetime | None = None) -> str:
    return _generate_code("ADM", now)


def generate_application_code(now: datetime | None = None) -> str:
    return _generate_code("APP", now)


def registration_code_prefix(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return f"EVT-{moment.strftime('%y%m%d')}-"


def next_registration_code(prefix: str, latest: str | None) -> str:
    """Registration codes run ``EVT-YYMMDD-0001`` upward within a day."""

    sequence = 1
    if latest:
        tail = latest.rsplit("-", 1)[-1]
        if tail.isdigit():
            sequence = int(tail) + 1
    return f"{prefix}{sequence:04d}"
