"""Reduce a feature set to a preview budget without losing its outline."""

import logging
import math

from .config import DEFAULT_BOUNDARY_TOLERANCE
from .features import features_bounds

logger = logging.getLogger(__name__)


def is_boundary_feature(feature, outer, band):
    """True when the feature's box touches the outer bounds within ``band``."""
    box = feature.bbox()
    if box is None:
        return False
    return (
        box.min_x - outer.min_x <= band
        or box.min_y - outer.min_y <= band
        or outer.max_x - box.max_x <= band
        or outer.max_y - box.max_y <= band
    )


def partition(features, tolerance=DEFAULT_BOUNDARY_TOLERANCE):
    """Split into (preserved, regular) index lists."""
    outer = features_bounds(features)
    band = outer.diagonal * tolerance if outer is not None else 0.0
    preserved, regular = [], []
    for index, feature in enumerate(features):
        if feature.has_warnings or (outer is not None and is_boundary_feature(feature, outer, band)):
            preserved.append(index)
        else:
            regular.append(index)
    return preserved, regular


def sample(features, max_count, tolerance=DEFAULT_BOUNDARY_TOLERANCE):
    """
    At most ``max_count`` features, plus every feature that must stay.

    Features carrying warnings and features on the outer edge of the data
    are always kept, even past the budget. Remaining slots take regular
    features at an even stride. The result keeps input order.
    """
    features = list(features)
    if len(features) <= max_count:
        return features

    preserved, regular = partition(features, tolerance)
    remaining = max_count - len(preserved)
    chosen = set(preserved)
    if remaining > 0 and regular:
        stride = math.ceil(len(regular) / remaining)
        chosen.update(regular[::stride])
    logger.debug(
        "sampled %d of %d features (%d preserved)", len(chosen), len(features), len(preserved)
    )
    return [features[i] for i in sorted(chosen)]
