"""
Optimization Lifecycle Coordinator

Drives the AI rebalancing cycle for the selected portfolio:

    IDLE -> REQUESTED -> READY | CONFLICT | FAILED -> APPLIED | CANCELED

A 409 from the optimizer is recoverable: it names the optimization already
in flight, which the caller can then cancel. Overlapping optimize calls for
the same portfolio are deduplicated by the request guard; a completion that
is no longer the latest generation (or that belongs to a portfolio the user
switched away from) is dropped without touching state.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

from portfolio_dashboard.domain.models import (
    ActionResult,
    OptimizationResult,
    OptimizationState,
    OptimizationStatus,
    PayloadError,
)
from portfolio_dashboard.domain.schemas.optimization import parse_optimization_result
from portfolio_dashboard.infrastructure.api.errors import (
    DEFAULT_ERROR_MESSAGE,
    ApiError,
    ConflictError,
    NotFoundError,
)
from portfolio_dashboard.infrastructure.api.types import OptimizationGateway
from portfolio_dashboard.infrastructure.throttle.request_guard import GenerationCounter, RequestGuard
from portfolio_dashboard.utils.time import safe_parse_timestamp

logger = logging.getLogger(__name__)

SettledListener = Callable[[str], Awaitable[Any]]

# Compatibility with optimizer builds that only report the id in free text
CONFLICT_ID_PATTERN = re.compile(
    r"Optimization ID:\s*([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})"
)

CONFLICT_MARKERS = (
    "There is already an optimization in progress",
    "There is already an optimization ready to be applied",
)

APPLY_NOT_FOUND_MESSAGE = "Optimization not found. It may have expired or been applied already."
CANCEL_NOT_FOUND_MESSAGE = "Optimization not found. It may have already been canceled or applied."
MISSING_ID_MESSAGE = "Could not obtain optimization ID. Applying changes may not work."
RETRY_SHORTLY_MESSAGE = "An optimization was just requested for this portfolio. Please try again in a moment."

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def extract_conflict_optimization_id(error: ConflictError) -> Optional[str]:
    """
    Id of the optimization that caused a 409.

    A structured `existingOptimizationId` field wins; otherwise the message is
    searched for "Optimization ID: <uuid>". None when neither matches.
    """
    body = error.body
    if isinstance(body, Mapping):
        existing = body.get("existingOptimizationId")
        if isinstance(existing, str) and existing.strip():
            return existing.strip()

    texts = [error.message or ""]
    if isinstance(body, str):
        texts.append(body)
    for text in texts:
        match = CONFLICT_ID_PATTERN.search(text)
        if match:
            return match.group(1)
    return None


def display_error(message: Optional[str]) -> Optional[str]:
    """User-facing wording for coordinator errors."""
    if message and any(marker in message for marker in CONFLICT_MARKERS):
        return (
            "There's already an optimization in progress for this portfolio. "
            "You need to apply or cancel it before creating a new one."
        )
    return message


def _upstream_message(exc: ApiError, fallback: str) -> str:
    if exc.status_code is None or not exc.message or exc.message == DEFAULT_ERROR_MESSAGE:
        return fallback
    return exc.message


class OptimizationCoordinator:
    def __init__(
        self,
        gateway: OptimizationGateway,
        guard: RequestGuard,
        generations: GenerationCounter,
    ):
        self.gateway = gateway
        self.guard = guard
        self.generations = generations
        self._listeners: List[SettledListener] = []

        self.portfolio_id: Optional[str] = None
        self.status = OptimizationStatus.IDLE
        self.result: Optional[OptimizationResult] = None
        self.error: Optional[str] = None
        self.in_progress_optimization_id: Optional[str] = None
        self.loading = False

    def add_listener(self, listener: SettledListener) -> None:
        """Register a callback run with the portfolio id after apply/cancel succeeds."""
        self._listeners.append(listener)

    def snapshot(self) -> OptimizationState:
        return OptimizationState(
            portfolio_id=self.portfolio_id,
            status=self.status,
            result=self.result,
            error=self.error,
            in_progress_optimization_id=self.in_progress_optimization_id,
            loading=self.loading,
        )

    @staticmethod
    def _key(portfolio_id: str) -> str:
        return f"optimize:{portfolio_id}"

    # ------------------------------------------------------------------
    # PORTFOLIO SWITCH
    # ------------------------------------------------------------------

    def discard(self, portfolio_id: Optional[str] = None) -> None:
        """Drop every piece of cached optimization state and retarget."""
        if self.portfolio_id is not None:
            self.generations.invalidate(self._key(self.portfolio_id))
        self.portfolio_id = portfolio_id
        self.status = OptimizationStatus.IDLE
        self.result = None
        self.error = None
        self.in_progress_optimization_id = None
        self.loading = False

    # ------------------------------------------------------------------
    # REFRESH
    # ------------------------------------------------------------------

    async def refresh(self, portfolio_id: str) -> bool:
        """Best-effort request for a fresh upstream prediction; never raises."""
        try:
            outcome = await self.gateway.request_fresh_signal(portfolio_id)
        except ApiError as exc:
            logger.warning("Error requesting new prediction for %s: %s", portfolio_id, exc)
            return False
        if not outcome.successful:
            logger.warning("New prediction for %s not generated: %s", portfolio_id, outcome.message)
            return False
        logger.info("Requested new prediction for %s: %s", portfolio_id, outcome.message)
        return True

    # ------------------------------------------------------------------
    # OPTIMIZE
    # ------------------------------------------------------------------

    async def optimize(self, portfolio_id: str) -> Optional[OptimizationResult]:
        """
        Request a rebalancing recommendation for `portfolio_id`.

        Returns the committed result, or None when the request was refused,
        failed, conflicted or went stale; the reason is on the observable state.
        """
        if self.portfolio_id != portfolio_id:
            self.discard(portfolio_id)

        if self.in_progress_optimization_id:
            logger.info(
                "Optimization %s still open for %s; apply or cancel it first",
                self.in_progress_optimization_id,
                portfolio_id,
            )
            return None

        key = self._key(portfolio_id)
        # Only a duplicate of an in-flight (or just finished) request is refused
        async with self.guard.guarded(key, ignore_throttle=True) as started:
            if not started:
                if not self.loading:
                    self.error = RETRY_SHORTLY_MESSAGE
                return None

            generation = self.generations.issue(key)
            self.loading = True
            self.error = None
            self.status = OptimizationStatus.REQUESTED
            try:
                return await self._run_optimization(portfolio_id, key, generation)
            finally:
                if self.generations.is_current(key, generation):
                    self.loading = False

    async def _run_optimization(self, portfolio_id: str, key: str, generation: int) -> Optional[OptimizationResult]:
        await self.refresh(portfolio_id)

        try:
            raw = await self.gateway.request_optimization(portfolio_id)
        except ConflictError as exc:
            existing_id = extract_conflict_optimization_id(exc)
            if not self.generations.is_current(key, generation):
                return None
            if existing_id is None:
                logger.warning("Optimization conflict for %s without a recognizable id: %s", portfolio_id, exc.message)
            else:
                logger.info("⚠️ Optimization %s already in progress for %s", existing_id, portfolio_id)
            self.in_progress_optimization_id = existing_id
            self.error = exc.message
            self.status = OptimizationStatus.CONFLICT
            return None
        except ApiError as exc:
            logger.error("Error optimizing portfolio %s: %s", portfolio_id, exc)
            if self.generations.is_current(key, generation):
                self.error = _upstream_message(exc, "Failed to optimize portfolio")
                self.status = OptimizationStatus.FAILED
            return None

        parsed = parse_optimization_result(raw)
        if isinstance(parsed, PayloadError):
            logger.error("Unusable optimization payload for %s: %s %s", portfolio_id, parsed.reason, parsed.details)
            if self.generations.is_current(key, generation):
                self.error = "Could not optimize portfolio: the optimizer returned an unreadable response"
                self.status = OptimizationStatus.FAILED
            return None

        if not parsed.optimization_id:
            recovered_id = await self._recover_optimization_id(portfolio_id)
            if recovered_id:
                parsed = parsed.with_optimization_id(recovered_id)

        if not self.generations.is_current(key, generation):
            logger.debug("Discarding stale optimization result for %s", portfolio_id)
            return None

        self.result = parsed
        if not parsed.successful:
            self.error = parsed.error_message or "Failed to optimize portfolio"
            self.status = OptimizationStatus.FAILED
        elif not parsed.optimization_id:
            self.error = MISSING_ID_MESSAGE
            self.status = OptimizationStatus.READY
        else:
            self.status = OptimizationStatus.READY
        logger.info(
            "Optimization ready for %s | id=%s recommendations=%d confidence=%.2f",
            portfolio_id,
            parsed.optimization_id,
            len(parsed.recommendations),
            parsed.confidence,
        )
        return parsed

    async def _recover_optimization_id(self, portfolio_id: str) -> Optional[str]:
        """Most recent optimization id recorded in the portfolio's history."""
        try:
            history = await self.gateway.get_optimization_history(portfolio_id)
        except ApiError as exc:
            logger.warning("Could not load optimization history for %s: %s", portfolio_id, exc)
            return None

        best_id: Optional[str] = None
        best_ts = _OLDEST
        for raw in history:
            if not isinstance(raw, Mapping):
                continue
            entry = parse_optimization_result(raw)
            if isinstance(entry, PayloadError) or not entry.optimization_id:
                continue
            ts = safe_parse_timestamp(raw.get("timestamp")) or _OLDEST
            if best_id is None or ts > best_ts:
                best_id, best_ts = entry.optimization_id, ts

        if best_id:
            logger.info("Adopted optimization id %s from history for %s", best_id, portfolio_id)
        return best_id

    # ------------------------------------------------------------------
    # APPLY / CANCEL
    # ------------------------------------------------------------------

    async def apply(self, optimization_id: str) -> ActionResult:
        if not optimization_id:
            return ActionResult(False, "No optimization ID available. Please try optimizing again.")

        portfolio_id = self.portfolio_id
        try:
            response = await self.gateway.apply_optimization(optimization_id)
        except NotFoundError:
            logger.warning("Optimization %s not found on apply", optimization_id)
            return ActionResult(False, APPLY_NOT_FOUND_MESSAGE)
        except ApiError as exc:
            logger.error("Error applying optimization %s: %s", optimization_id, exc)
            return ActionResult(False, _upstream_message(exc, "Failed to apply optimization"))

        outcome = ActionResult(
            successful=response.get("successful") is not False,
            message=response.get("message") or "Optimization applied successfully",
        )
        if not outcome.successful:
            return outcome

        if self.portfolio_id == portfolio_id:
            self.result = None
            self.error = None
            self.in_progress_optimization_id = None
            self.status = OptimizationStatus.APPLIED
        logger.info("✅ Optimization %s applied", optimization_id)
        await self._notify_settled(portfolio_id)
        return outcome

    async def cancel(self, optimization_id: str) -> ActionResult:
        if not optimization_id:
            return ActionResult(False, "No in-progress optimization to cancel.")

        portfolio_id = self.portfolio_id
        try:
            response = await self.gateway.cancel_optimization(optimization_id)
        except NotFoundError:
            logger.warning("Optimization %s not found on cancel", optimization_id)
            return ActionResult(False, CANCEL_NOT_FOUND_MESSAGE)
        except ApiError as exc:
            logger.error("Error canceling optimization %s: %s", optimization_id, exc)
            return ActionResult(False, _upstream_message(exc, "Failed to cancel optimization"))

        outcome = ActionResult(
            successful=response.get("successful") is not False,
            message=response.get("message") or "Optimization canceled successfully",
        )
        if not outcome.successful:
            return outcome

        if self.portfolio_id == portfolio_id:
            matched = False
            if self.in_progress_optimization_id == optimization_id:
                self.in_progress_optimization_id = None
                self.error = None
                matched = True
            if self.result is not None and self.result.optimization_id == optimization_id:
                self.result = None
                matched = True
            if matched:
                self.status = OptimizationStatus.CANCELED
        logger.info("Optimization %s canceled", optimization_id)
        await self._notify_settled(portfolio_id)
        return outcome

    async def _notify_settled(self, portfolio_id: Optional[str]) -> None:
        if portfolio_id is None:
            return
        for listener in self._listeners:
            try:
                await listener(portfolio_id)
            except ApiError as exc:
                logger.warning("Refresh after optimization settled failed for %s: %s", portfolio_id, exc)
