from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..internal_core.contracts import Capture, now_ms
from ..internal_core.entity_store import EntityStore
from ..mediator.base import CancellationToken, OperationCancelled, ensure_token
from .base import TypeInferenceService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReinferenceSummary:
    candidates: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


def needs_reinference(capture: Capture, threshold: float) -> bool:
    if capture.is_migrated:
        return False
    return capture.type_confidence is None or capture.type_confidence < threshold


async def reinfer_captures(
    store: EntityStore[Capture],
    inference: TypeInferenceService,
    threshold: float,
    token: Optional[CancellationToken] = None,
) -> ReinferenceSummary:
    """One pass: keep a new classification only when its confidence is higher."""
    token = ensure_token(token)
    captures = await store.get_all(token)
    candidates: List[Capture] = [c for c in captures if needs_reinference(c, threshold)]
    if not candidates:
        logger.debug("No captures need re-inference at this time")
        return ReinferenceSummary()

    updated = skipped = errors = 0
    for capture in candidates:
        if token.cancelled:
            break
        try:
            result = inference.infer(capture.text)
            outcome = {"changed": False}

            def upgrade(current: Capture) -> Optional[Dict[str, Any]]:
                # Decided against the stored copy; an edited text waits for the next pass.
                outcome["changed"] = (
                    current.text == capture.text
                    and needs_reinference(current, threshold)
                    and result.confidence > (current.type_confidence or 0.0)
                )
                if not outcome["changed"]:
                    return None
                return {
                    "inferred_type": result.inferred_type,
                    "type_confidence": result.confidence,
                    "updated_at": now_ms(),
                }

            saved = await store.patch(capture.id, upgrade, token)
            if saved is None or not outcome["changed"]:
                skipped += 1
                continue
            updated += 1
        except OperationCancelled:
            raise
        except Exception:
            errors += 1
            logger.exception("Error re-inferring capture %s", capture.id)

    summary = ReinferenceSummary(
        candidates=len(candidates), updated=updated, skipped=skipped, errors=errors
    )
    logger.info(
        "Re-inference pass finished: candidates=%d updated=%d skipped=%d errors=%d",
        summary.candidates,
        summary.updated,
        summary.skipped,
        summary.errors,
    )
    return summary


async def run_reinference_loop(
    store: EntityStore[Capture],
    inference: TypeInferenceService,
    threshold: float,
    interval_seconds: int,
    token: CancellationToken,
) -> None:
    logger.info(
        "Re-inference loop started. threshold=%s interval_seconds=%s",
        threshold,
        interval_seconds,
    )
    while not token.cancelled:
        try:
            await reinfer_captures(store, inference, threshold, token)
        except OperationCancelled:
            break
        except Exception:
            logger.exception("Error occurred while processing captures for re-inference")
        await asyncio.sleep(max(1, interval_seconds))
    logger.info("Re-inference loop stopped")
