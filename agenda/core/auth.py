"""
Tenant identification for company-scoped routes.

Session and cookie handling live in front of this service; requests reach
it with the authenticated company in the X-Company-Id header.
"""
from typing import Optional
import logging

from fastapi import Header

from agenda.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

COMPANY_HEADER = "X-Company-Id"


def parse_company_id(raw: Optional[str]) -> int:
    """Validate a raw header value and return the company id.

    Raises:
        UnauthorizedError: header missing, not an integer, or not positive
    """
    if raw is None or not raw.strip():
        raise UnauthorizedError("Company session required")
    try:
        company_id = int(raw.strip())
    except ValueError:
        logger.debug(f"Rejected malformed company header: {raw!r}")
        raise UnauthorizedError("Invalid company session")
    if company_id <= 0:
        raise UnauthorizedError("Invalid company session")
    return company_id


async def get_company_id(
    x_company_id: Optional[str] = Header(None, alias=COMPANY_HEADER),
) -> int:
    """FastAPI dependency resolving the current company id."""
    return parse_company_id(x_company_id)
