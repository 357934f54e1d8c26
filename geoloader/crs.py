"""
Reference systems known to the importer.

The registry is an explicit context object: build one per process with
``default_registry()`` and hand it to the detector and transformer.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from pyproj import CRS, Transformer

from .errors import UnknownReferenceSystemError

logger = logging.getLogger(__name__)


class ReferenceSystem(Enum):
    WGS84 = "EPSG:4326"
    SWISS_LV95 = "EPSG:2056"
    SWISS_LV03 = "EPSG:21781"
    NONE = "none"

    @property
    def identifier(self):
        return self.value

    @property
    def is_swiss(self):
        return self in (ReferenceSystem.SWISS_LV95, ReferenceSystem.SWISS_LV03)

    @classmethod
    def parse(cls, value):
        """Accept an enum member, an EPSG identifier or a member name."""
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        key = text.upper().replace("-", "_").replace(" ", "_")
        if key.isdigit():
            key = f"EPSG:{key}"
        for member in cls:
            if key in (member.value.upper(), member.name):
                return member
        if key in _ALIASES:
            return _ALIASES[key]
        raise UnknownReferenceSystemError(f"unknown reference system: {value!r}")


_ALIASES = {
    "LV95": ReferenceSystem.SWISS_LV95,
    "SWISSLV95": ReferenceSystem.SWISS_LV95,
    "CH1903+": ReferenceSystem.SWISS_LV95,
    "LV03": ReferenceSystem.SWISS_LV03,
    "SWISSLV03": ReferenceSystem.SWISS_LV03,
    "CH1903": ReferenceSystem.SWISS_LV03,
    "LOCAL": ReferenceSystem.NONE,
    "": ReferenceSystem.NONE,
}


@dataclass(frozen=True)
class Envelope:
    """Characteristic numeric range of a system's (x, y) values."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float
    requires_fraction: bool = False

    def contains(self, x, y):
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


@dataclass(frozen=True)
class SystemDefinition:
    system: ReferenceSystem
    definition: str
    envelope: Envelope
    # order of the axes as the authority (EPSG) defines them
    authority_axis_order: str = "en"
    label: str = ""


SWISS_LV95_DEFINITION = (
    "+proj=somerc +lat_0=46.9524055555556 +lon_0=7.43958333333333 +k_0=1 "
    "+x_0=2600000 +y_0=1200000 +ellps=bessel "
    "+towgs84=674.374,15.056,405.346,0,0,0,0 +units=m +no_defs +type=crs"
)
SWISS_LV03_DEFINITION = (
    "+proj=somerc +lat_0=46.9524055555556 +lon_0=7.43958333333333 +k_0=1 "
    "+x_0=600000 +y_0=200000 +ellps=bessel "
    "+towgs84=674.374,15.056,405.346,0,0,0,0 +units=m +no_defs +type=crs"
)
WGS84_DEFINITION = "+proj=longlat +datum=WGS84 +no_defs +type=crs"

DEFAULT_DEFINITIONS = (
    SystemDefinition(
        ReferenceSystem.SWISS_LV95, SWISS_LV95_DEFINITION,
        Envelope(2_485_000, 2_835_000, 1_075_000, 1_295_000),
        authority_axis_order="en", label="Swiss LV95 (CH1903+)",
    ),
    SystemDefinition(
        ReferenceSystem.SWISS_LV03, SWISS_LV03_DEFINITION,
        Envelope(485_000, 835_000, 75_000, 295_000),
        authority_axis_order="en", label="Swiss LV03 (CH1903)",
    ),
    SystemDefinition(
        ReferenceSystem.WGS84, WGS84_DEFINITION,
        Envelope(-180.0, 180.0, -90.0, 90.0, requires_fraction=True),
        authority_axis_order="ne", label="WGS84 (lon/lat)",
    ),
)


class ReferenceSystemRegistry:
    """Holds system definitions and caches the pyproj transformers built from them."""

    def __init__(self, definitions=()):
        self._definitions = {}
        self._transformers = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition):
        if definition.system is ReferenceSystem.NONE:
            raise ValueError("the local system has no projection definition")
        self._definitions[definition.system] = definition
        # drop cached transformers touching a redefined system
        self._transformers = {
            key: value for key, value in self._transformers.items()
            if definition.system not in key
        }
        logger.debug("registered reference system %s", definition.system.identifier)

    def get(self, system):
        system = ReferenceSystem.parse(system)
        try:
            return self._definitions[system]
        except KeyError:
            raise UnknownReferenceSystemError(
                f"reference system not registered: {system.identifier}"
            ) from None

    def __contains__(self, system):
        return system in self._definitions

    def __iter__(self):
        return iter(self._definitions.values())

    def systems(self):
        return list(self._definitions)

    def crs(self, system):
        return CRS.from_user_input(self.get(system).definition)

    def transformer(self, source, target):
        """Return a cached pyproj transformer working in (x, y) = (east, north) order."""
        key = (source, target)
        if key not in self._transformers:
            self._transformers[key] = Transformer.from_crs(
                self.crs(source), self.crs(target), always_xy=True
            )
        return self._transformers[key]


def default_registry():
    """Registry with the Swiss and WGS84 definitions used by the importer."""
    return ReferenceSystemRegistry(DEFAULT_DEFINITIONS)
