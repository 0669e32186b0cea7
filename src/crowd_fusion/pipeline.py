"""
Analysis Pipeline
=================

Runs one image through registry -> fusion -> projection.

Two entry points:
    - run_analysis: stateless single-shot analysis (HTTP uploads)
    - AnalysisSession: one viewer's sequence of uploads, where a newer
      upload supersedes and cancels an analysis still in flight

The registry is passed in explicitly; nothing here reads global state.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from crowd_fusion.estimators.registry import EstimatorRegistry
from crowd_fusion.fusion.engine import FusionEngine
from crowd_fusion.imaging.image import AnalysisImage
from crowd_fusion.models.estimate import EstimatorKind
from crowd_fusion.models.output import AnalysisResponse
from crowd_fusion.observability.projection import DisplayOptions, project


logger = logging.getLogger(__name__)


class AnalysisSuperseded(Exception):
    """Raised to a caller whose analysis was replaced by a newer upload."""
    pass


@dataclass
class AnalysisContext:
    """
    Collaborators shared by every analysis.

    Attributes:
        registry: Estimator availability and dispatch
        engine: Fusion policy
        display: Display toggles applied to the render model
    """

    registry: EstimatorRegistry
    engine: FusionEngine
    display: DisplayOptions


async def run_analysis(
    context: AnalysisContext,
    image: AnalysisImage,
    enabled: Iterable[EstimatorKind],
    display: Optional[DisplayOptions] = None,
) -> AnalysisResponse:
    """
    Analyze one image.

    Never raises for estimator failures: the worst case is a NO_DATA
    response with a count of 0.

    Args:
        context: Shared collaborators
        image: Decoded image
        enabled: Kinds enabled for this run
        display: Per-request display toggles (defaults to the context's)

    Returns:
        AnalysisResponse render model
    """
    start_time = time.time()

    outcome = await context.registry.analyze(image, enabled)
    fusion = context.engine.fuse(outcome.estimates)
    response = project(outcome, fusion, display or context.display)

    elapsed_ms = (time.time() - start_time) * 1000
    logger.info(
        f"Analysis {image!r}: count={fusion.final_count} "
        f"({fusion.reason.value}), status={outcome.status.value}, "
        f"{elapsed_ms:.0f}ms"
    )
    return response


class AnalysisSession:
    """
    Sequence of analyses for one viewer.

    At most one analysis is in flight. Starting a new one cancels the
    previous one, whose caller receives AnalysisSuperseded.

    Example:
        session = AnalysisSession(context)
        try:
            response = await session.analyze(image, enabled)
        except AnalysisSuperseded:
            pass  # a newer upload took over
    """

    def __init__(self, context: AnalysisContext) -> None:
        self.context = context
        self._current: Optional[asyncio.Task] = None
        self._generation: int = 0
        self._superseded_count: int = 0

    @property
    def generation(self) -> int:
        """Number of analyses started on this session."""
        return self._generation

    @property
    def superseded_count(self) -> int:
        return self._superseded_count

    async def analyze(
        self,
        image: AnalysisImage,
        enabled: Iterable[EstimatorKind],
        display: Optional[DisplayOptions] = None,
    ) -> AnalysisResponse:
        """
        Analyze `image`, superseding any analysis still in flight.

        Raises:
            AnalysisSuperseded: If a newer analysis started before this
                one finished
        """
        previous = self._current
        if previous is not None and not previous.done():
            previous.cancel()
            self._superseded_count += 1
            logger.info(f"Superseding analysis generation {self._generation}")

        self._generation += 1
        generation = self._generation
        task = asyncio.create_task(
            run_analysis(self.context, image, list(enabled), display),
            name=f"analysis_{generation}",
        )
        self._current = task

        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and generation != self._generation:
                raise AnalysisSuperseded(
                    f"analysis {generation} superseded by {self._generation}"
                )
            raise
        finally:
            if self._current is task and task.done():
                self._current = None

    async def close(self) -> None:
        """Cancel any analysis still in flight."""
        task = self._current
        self._current = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
