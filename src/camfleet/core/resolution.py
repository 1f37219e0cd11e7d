from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from camfleet.models import ZERO_RESOLUTION, Resolution

logger = logging.getLogger(__name__)

DEFAULT_RATIO_TOLERANCE = 0.5


@dataclass(frozen=True)
class _Candidate:
    resolution: Resolution
    area_diff: float
    ratio_diff: float


def match_resolution(
    target: Resolution,
    available: Sequence[Resolution],
    ratio_tolerance: float = DEFAULT_RATIO_TOLERANCE,
) -> Resolution:
    """Pick the advertised resolution closest to ``target``.

    Candidates whose aspect ratio is within ``ratio_tolerance`` of the target
    win on pixel area. Only when none qualifies does the closest aspect ratio
    win, with area as the tie breaker. Returns ``ZERO_RESOLUTION`` when
    nothing is advertised.
    """
    if not available:
        return ZERO_RESOLUTION

    target_area = float(target.area)
    target_ratio = target.ratio

    candidates = [
        _Candidate(
            resolution=res,
            area_diff=abs(target_area - res.area),
            ratio_diff=abs(target_ratio - res.ratio),
        )
        for res in available
    ]

    within = [c for c in candidates if c.ratio_diff <= ratio_tolerance]
    if within:
        best = within[0]
        for candidate in within[1:]:
            if candidate.area_diff < best.area_diff:
                best = candidate
        return best.resolution

    best = candidates[0]
    for candidate in candidates[1:]:
        if candidate.ratio_diff < best.ratio_diff or (
            candidate.ratio_diff == best.ratio_diff
            and candidate.area_diff < best.area_diff
        ):
            best = candidate
    logger.debug(
        "No resolution within ratio tolerance %.2f of %s, closest shape is %s",
        ratio_tolerance,
        target,
        best.resolution,
    )
    return best.resolution


@dataclass(frozen=True)
class ResolutionMatcher:
    ratio_tolerance: float = DEFAULT_RATIO_TOLERANCE

    def match(self, target: Resolution, available: Sequence[Resolution]) -> Resolution:
        return match_resolution(target, available, self.ratio_tolerance)
