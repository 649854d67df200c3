import logging
import secrets

from fastapi import Header, HTTPException, Query

from notifyhub.core.config import settings


log = logging.getLogger(__name__)


def _matches(candidate: str | None) -> bool:
    expected = settings.internal_api_secret.get_secret_value()
    return bool(candidate and expected) and secrets.compare_digest(candidate, expected)


async def require_internal_secret(
    x_internal_secret: str | None = Header(default=None),
    secret: str | None = Query(default=None),
) -> None:
    # Header for the scheduler / internal nudges, ?secret= for manual runs
    if _matches(x_internal_secret) or _matches(secret):
        return
    log.warning(
        "internal auth rejected: has_header=%s has_query=%s secret_configured=%s",
        bool(x_internal_secret),
        bool(secret),
        bool(settings.internal_api_secret.get_secret_value()),
    )
    raise HTTPException(status_code=401, detail="Unauthorized (X-Internal-Secret header or ?secret required)")
