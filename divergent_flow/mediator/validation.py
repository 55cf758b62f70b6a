from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .base import CancellationToken, ValidationFailed, ValidationFailure

Validator = Callable[[Any, CancellationToken], Awaitable[List[ValidationFailure]]]


async def run_validators(
    request: Any,
    validators: Sequence[Validator],
    token: CancellationToken,
) -> None:
    token.raise_if_cancelled()
    if not validators:
        return

    tasks = [asyncio.ensure_future(validator(request, token)) for validator in validators]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        # First error wins; siblings are stopped before it propagates.
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    token.raise_if_cancelled()

    failures = [failure for batch in results for failure in (batch or []) if failure is not None]
    if failures:
        raise ValidationFailed(failures)


# Rule helpers used by the feature validators. Messages follow the
# "'<Field>' must ..." shape clients already display.


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def not_empty(field: str, value: Optional[str]) -> Optional[ValidationFailure]:
    if _is_blank(value):
        return ValidationFailure(field, f"'{field}' must not be empty.")
    return None


def max_length(field: str, value: Optional[str], limit: int) -> Optional[ValidationFailure]:
    if value is not None and len(value) > limit:
        return ValidationFailure(
            field,
            f"The length of '{field}' must be {limit} characters or fewer. You entered {len(value)} characters.",
        )
    return None


def inclusive_between(
    field: str, value: Optional[float], low: float, high: float
) -> Optional[ValidationFailure]:
    if value is None:
        return None
    if value < low or value > high:
        return ValidationFailure(
            field,
            f"'{field}' must be between {low:g} and {high:g}. You entered {value:g}.",
        )
    return None


def at_least(field: str, value: Optional[float], low: float) -> Optional[ValidationFailure]:
    if value is not None and value < low:
        return ValidationFailure(field, f"'{field}' must be greater than or equal to '{low:g}'.")
    return None


def collect(*checks: Optional[ValidationFailure]) -> List[ValidationFailure]:
    return [check for check in checks if check is not None]
