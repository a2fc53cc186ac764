"""
Settings of the editing engine.
"""
import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditorConfig:
    """
    Tunables for presets and edit verification.

    Attributes:
        identity_epsilon: Tolerance under which a preview counts as identity.
        normalize_extent: Bounding box diagonal targeted by NORMALIZE_SCALE.
        normalize_min_percentile: Lower percentile of the NORMALIZE_SCALE box.
        normalize_max_percentile: Upper percentile of the NORMALIZE_SCALE box.
        normalize_use_images: NORMALIZE_SCALE uses camera centres instead of points.
        center_use_images: CENTER_AT_ORIGIN uses the median camera centre
                           instead of the mean point position.
        verify_after_edit: Check every edited graph for invariant violations
                           before publishing it (debug aid, O(observations)).
    """
    identity_epsilon: float = 1e-9
    normalize_extent: float = 10.0
    normalize_min_percentile: float = 0.1
    normalize_max_percentile: float = 0.9
    normalize_use_images: bool = True
    center_use_images: bool = False
    verify_after_edit: bool = False

    def __post_init__(self):
        if not (0.0 <= self.normalize_min_percentile <= self.normalize_max_percentile <= 1.0):
            raise ValueError(
                "Percentiles must satisfy 0 <= normalize_min_percentile <= normalize_max_percentile <= 1, "
                f"got {self.normalize_min_percentile} and {self.normalize_max_percentile}."
            )
        if self.identity_epsilon < 0:
            raise ValueError("identity_epsilon must be non-negative.")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'EditorConfig':
        """
        Builds a config from a mapping, e.g. host application preferences.
        Unknown keys are ignored with a warning.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.warning("Ignoring unknown editor config keys: %s", ", ".join(unknown))
        return cls(**{key: value for key, value in values.items() if key in known})

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}
