"""
Estimator Registry
==================

Tracks which estimators are available and runs the qualifying ones
against one image.

Loading:
    Every kind is loaded once per process, independently, in a worker
    thread. Each load is exposed as a readiness future. Callers wait for
    it with a bound; when the bound expires the kind moves to GAVE_UP and
    the service proceeds without that capability.

Dispatch:
    qualifying = enabled ∩ available
    - DIRECT_DETECTION always qualifies when available (toggles only
      affect what is displayed)
    - ZERO_SHOT_CROP depends on DIRECT_DETECTION: it qualifies only when
      detection is available, and it runs only if detection succeeded in
      the same run

    Qualifying estimators run concurrently. A failing estimator is logged
    and recorded; it never cancels a sibling and never aborts the run.

Example:
    registry = EstimatorRegistry()
    registry.start_loading(create_loaders(settings.estimators))
    await registry.wait_all_ready(timeout=120.0)

    outcome = await registry.analyze(image, enabled=settings.estimators.enabled)
    print(outcome.status, [e.kind for e in outcome.estimates])
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

from crowd_fusion.estimators.engine import Estimator
from crowd_fusion.imaging.image import AnalysisImage
from crowd_fusion.models.availability import (
    EstimatorAvailability,
    FailureReason,
    FailureRecord,
)
from crowd_fusion.models.estimate import KIND_ORDER, Estimate, EstimatorKind
from crowd_fusion.models.fusion import RegistryOutcome


logger = logging.getLogger(__name__)


Loader = Callable[[], Estimator]


@dataclass
class EstimatorSlot:
    """
    Availability and handle of one estimator kind.

    Attributes:
        kind: Estimator kind
        availability: One-shot load state
        estimator: Loaded estimator, None unless LOADED
        detail: Failure or give-up detail for status display
    """

    kind: EstimatorKind
    availability: EstimatorAvailability = EstimatorAvailability.NOT_LOADED
    estimator: Optional[Estimator] = None
    detail: Optional[str] = None

    def settle(
        self,
        availability: EstimatorAvailability,
        estimator: Optional[Estimator] = None,
        detail: Optional[str] = None,
    ) -> None:
        """
        Move out of NOT_LOADED. Every other state is terminal.

        Raises:
            ValueError: If the slot already settled or the target is NOT_LOADED
        """
        if self.availability.is_terminal:
            raise ValueError(
                f"{self.kind.value} already settled as {self.availability.value}"
            )
        if not availability.is_terminal:
            raise ValueError("Cannot settle a slot back to NOT_LOADED")
        if availability is EstimatorAvailability.LOADED and estimator is None:
            raise ValueError("A LOADED slot needs an estimator")

        self.availability = availability
        self.estimator = estimator if availability is EstimatorAvailability.LOADED else None
        self.detail = detail


class EstimatorRegistry:
    """
    Registry of estimator availability and per-image dispatcher.

    One instance is created at startup and passed to every analysis.
    """

    def __init__(self) -> None:
        self._slots: Dict[EstimatorKind, EstimatorSlot] = {
            kind: EstimatorSlot(kind) for kind in KIND_ORDER
        }
        self._ready: Dict[EstimatorKind, asyncio.Task] = {}

        # Metrics
        self._run_count: int = 0
        self._failure_counts: Dict[EstimatorKind, int] = {kind: 0 for kind in KIND_ORDER}

    @classmethod
    def from_estimators(cls, estimators: Iterable[Estimator]) -> "EstimatorRegistry":
        """Build a registry with the given estimators already LOADED."""
        registry = cls()
        for estimator in estimators:
            registry.register(estimator)
        return registry

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def register(self, estimator: Estimator) -> None:
        """Mark the estimator's kind LOADED with this handle."""
        self._slots[estimator.kind].settle(EstimatorAvailability.LOADED, estimator=estimator)
        logger.info(f"Estimator ready: {estimator.kind.value}")

    def mark_failed(self, kind: EstimatorKind, detail: str) -> None:
        """Mark a kind LOAD_FAILED."""
        self._slots[kind].settle(EstimatorAvailability.LOAD_FAILED, detail=detail)
        logger.error(f"Estimator load failed: {kind.value}: {detail}")

    def availability(self, kind: EstimatorKind) -> EstimatorAvailability:
        return self._slots[kind].availability

    def slot(self, kind: EstimatorKind) -> EstimatorSlot:
        return self._slots[kind]

    def available_kinds(self) -> Set[EstimatorKind]:
        """Kinds that loaded successfully."""
        return {
            kind for kind, slot in self._slots.items()
            if slot.availability is EstimatorAvailability.LOADED
        }

    @property
    def all_settled(self) -> bool:
        """True once every scheduled kind has left NOT_LOADED."""
        return all(
            slot.availability.is_terminal or kind not in self._ready
            for kind, slot in self._slots.items()
        )

    def snapshot(self) -> Dict[EstimatorKind, EstimatorAvailability]:
        return {kind: self._slots[kind].availability for kind in KIND_ORDER}

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def start_loading(self, loaders: Mapping[EstimatorKind, Loader]) -> None:
        """
        Schedule one background load per kind.

        Kinds without a loader stay NOT_LOADED and are never qualifying.
        Must be called from a running event loop.

        Raises:
            ValueError: If a kind is already loading or settled
        """
        for kind in KIND_ORDER:
            loader = loaders.get(kind)
            if loader is None:
                continue
            if kind in self._ready or self._slots[kind].availability.is_terminal:
                raise ValueError(f"{kind.value} is already loading or settled")
            self._ready[kind] = asyncio.create_task(
                self._load(kind, loader),
                name=f"load_{kind.value}",
            )

    async def _load(self, kind: EstimatorKind, loader: Loader) -> None:
        slot = self._slots[kind]
        try:
            estimator = await asyncio.to_thread(loader)
            loaded_kind = getattr(estimator, "kind", None)
            if loaded_kind is not kind:
                raise TypeError(
                    f"loader returned {type(estimator).__name__} "
                    f"with kind {getattr(loaded_kind, 'value', loaded_kind)}"
                )
        except Exception as e:
            if slot.availability.is_terminal:
                logger.warning(f"Late load failure ignored for {kind.value}: {e}")
                return
            self.mark_failed(kind, f"{type(e).__name__}: {e}")
            return

        if slot.availability.is_terminal:
            logger.warning(
                f"{kind.value} finished loading after {slot.availability.value}; discarded"
            )
            return
        self.register(estimator)

    async def wait_ready(self, kind: EstimatorKind, timeout: float) -> EstimatorAvailability:
        """
        Wait up to `timeout` seconds for a kind to settle.

        A kind still loading when the wait expires moves to GAVE_UP. A kind
        that was never scheduled is returned as-is.

        Returns:
            The kind's availability after the wait
        """
        task = self._ready.get(kind)
        slot = self._slots[kind]
        if task is None or slot.availability.is_terminal:
            return slot.availability

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            if not slot.availability.is_terminal:
                slot.settle(
                    EstimatorAvailability.GAVE_UP,
                    detail=f"not ready after {timeout:.1f}s",
                )
                logger.warning(
                    f"Gave up waiting for {kind.value} after {timeout:.1f}s; "
                    f"proceeding without it"
                )
        return slot.availability

    async def wait_all_ready(self, timeout: float) -> Dict[EstimatorKind, EstimatorAvailability]:
        """Wait for every scheduled kind concurrently, each bounded by `timeout`."""
        await asyncio.gather(*(self.wait_ready(kind, timeout) for kind in KIND_ORDER))
        return self.snapshot()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def qualifying_kinds(self, enabled: Iterable[EstimatorKind]) -> Tuple[EstimatorKind, ...]:
        """
        Compute the kinds to run, in canonical order.

        Args:
            enabled: Kinds enabled by the user for this run
        """
        available = self.available_kinds()
        kinds = set(enabled) & available

        if EstimatorKind.DIRECT_DETECTION in available:
            kinds.add(EstimatorKind.DIRECT_DETECTION)
        else:
            kinds.discard(EstimatorKind.ZERO_SHOT_CROP)

        return tuple(kind for kind in KIND_ORDER if kind in kinds)

    async def analyze(
        self,
        image: AnalysisImage,
        enabled: Iterable[EstimatorKind],
    ) -> RegistryOutcome:
        """
        Run every qualifying estimator against one image.

        Waits for all of them to settle. Individual failures are recorded,
        never raised.

        Args:
            image: Decoded image, shared read-only by all estimators
            enabled: Kinds enabled by the user for this run

        Returns:
            RegistryOutcome with estimates and failures in canonical order
        """
        self._run_count += 1
        kinds = self.qualifying_kinds(enabled)
        if not kinds:
            logger.warning("No qualifying estimators for this image")
            return RegistryOutcome()

        estimates: Dict[EstimatorKind, Estimate] = {}
        failures: Dict[EstimatorKind, FailureRecord] = {}

        async def run(kind: EstimatorKind, detection: Optional[Estimate] = None) -> Optional[Estimate]:
            estimator = self._slots[kind].estimator
            try:
                estimate = await estimator.estimate(image, detection)
                if estimate.kind is not kind:
                    raise TypeError(f"{kind.value} estimator returned a {estimate.kind.value} estimate")
            except Exception as e:
                record = FailureRecord.from_exception(kind, e)
                failures[kind] = record
                self._failure_counts[kind] += 1
                logger.warning(
                    f"Estimator {kind.value} failed ({record.reason.value}): {record.message}"
                )
                return None
            estimates[kind] = estimate
            return estimate

        tasks = []
        detection_task: Optional[asyncio.Task] = None
        if EstimatorKind.DIRECT_DETECTION in kinds:
            detection_task = asyncio.create_task(run(EstimatorKind.DIRECT_DETECTION))
            tasks.append(detection_task)

        for kind in kinds:
            if kind in (EstimatorKind.DIRECT_DETECTION, EstimatorKind.ZERO_SHOT_CROP):
                continue
            tasks.append(asyncio.create_task(run(kind)))

        if EstimatorKind.ZERO_SHOT_CROP in kinds and detection_task is not None:

            async def run_zero_shot() -> None:
                detection = await detection_task
                if detection is None:
                    failures[EstimatorKind.ZERO_SHOT_CROP] = FailureRecord(
                        kind=EstimatorKind.ZERO_SHOT_CROP,
                        reason=FailureReason.MODEL_UNAVAILABLE,
                        message="direct detection did not succeed in this run",
                    )
                    logger.info("Skipping zero-shot crops: no detection result")
                    return
                await run(EstimatorKind.ZERO_SHOT_CROP, detection)

            tasks.append(asyncio.create_task(run_zero_shot()))

        await asyncio.gather(*tasks)

        outcome = RegistryOutcome(
            estimates=tuple(estimates[k] for k in KIND_ORDER if k in estimates),
            failures=tuple(failures[k] for k in KIND_ORDER if k in failures),
        )
        logger.info(
            f"Registry run {self._run_count}: status={outcome.status.value}, "
            f"ok={[e.kind.value for e in outcome.estimates]}, "
            f"failed={[f.kind.value for f in outcome.failures]}"
        )
        return outcome

    def get_metrics(self) -> dict:
        """Get registry metrics for observability."""
        return {
            "run_count": self._run_count,
            "availability": {kind.value: state.value for kind, state in self.snapshot().items()},
            "failure_counts": {kind.value: n for kind, n in self._failure_counts.items()},
        }
