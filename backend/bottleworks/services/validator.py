"""Order status-transition validation.

The legal-transition rules live in the database function
``validate_order_status_transition(_order_id, _new_status)``; this module
only calls it and parses the JSON it returns.  The state machine takes
any ``TransitionValidator`` so tests can inject a fake.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from bottleworks.errors import UpstreamUnavailable
from bottleworks.schemas.order import ValidationResult

logger = logging.getLogger(__name__)


class TransitionValidator(Protocol):
    async def validate(self, order_id: str, new_status: str) -> ValidationResult: ...


def parse_validation_result(raw: dict | str | None) -> ValidationResult:
    """Turn the function's jsonb answer into a ValidationResult."""
    if raw is None:
        raise UpstreamUnavailable("Status validator returned no result")
    if isinstance(raw, str):
        raw = json.loads(raw)
    try:
        return ValidationResult.model_validate(raw)
    except ValidationError as exc:
        logger.error("Malformed validator response: %s", raw)
        raise UpstreamUnavailable("Status validator returned a malformed result") from exc


class SqlTransitionValidator:
    """Calls the stored procedure in the request's own transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def validate(self, order_id: str, new_status: str) -> ValidationResult:
        stmt = select(
            func.validate_order_status_transition(order_id, new_status)
        )
        try:
            raw = (await self.db.execute(stmt)).scalar()
        except DBAPIError as exc:
            logger.error(
                "validate_order_status_transition failed for %s -> %s: %s",
                order_id, new_status, exc,
            )
            raise UpstreamUnavailable("Status validator is unavailable") from exc
        return parse_validation_result(raw)
