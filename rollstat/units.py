"""Physical quantity types and the adapters the rolling statistics consume.

A ``Quantity`` is a value tagged with a unit symbol. Every unit belongs to
exactly one ``QuantityKind`` (temperature, depth, ...) and converts to the
kind's canonical unit, the first unit listed for that kind, by
``canonical = value * scale + offset``.

``RollingStatistic`` never touches ``Quantity`` directly; it goes through a
``QuantityAdapter`` so the same aggregator runs over plain floats or any
quantity kind.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import total_ordering
from typing import Any, Dict, Optional, Tuple, Union

from .constants import (
    MM_PER_CM,
    MM_PER_INCH,
    MS_PER_KMH,
    MS_PER_MPH,
    MS_PER_KNOT,
    HPA_PER_KPA,
    HPA_PER_INHG,
    HPA_PER_MMHG,
    FAHRENHEIT_SCALE,
    FAHRENHEIT_OFFSET,
    KELVIN_OFFSET,
)


class InvalidQuantityError(ValueError):
    """Raised when a quantity would be built from a non-finite magnitude."""


@dataclass(frozen=True)
class UnitDef:
    """A unit of some kind and its conversion to the kind's canonical unit."""
    symbol: str         # e.g. "mm"
    label: str          # e.g. "millimetre"
    scale: float = 1.0
    offset: float = 0.0


@dataclass(frozen=True)
class QuantityKind:
    """A physical kind with its unit table; units[0] is canonical."""
    name: str
    units: Tuple[UnitDef, ...]

    @property
    def canonical_unit(self) -> str:
        return self.units[0].symbol

    def unit(self, symbol: str) -> UnitDef:
        for unit in self.units:
            if unit.symbol == symbol:
                return unit
        raise ValueError(f"Unknown {self.name} unit: {symbol}")

    def to_canonical(self, value: float, symbol: str) -> float:
        unit = self.unit(symbol)
        return value * unit.scale + unit.offset

    def from_canonical(self, value: float, symbol: str) -> float:
        unit = self.unit(symbol)
        return (value - unit.offset) / unit.scale


TEMPERATURE = QuantityKind(
    name="temperature",
    units=(
        UnitDef("C", "degree Celsius"),
        UnitDef("F", "degree Fahrenheit", FAHRENHEIT_SCALE, FAHRENHEIT_OFFSET),
        UnitDef("K", "kelvin", 1.0, KELVIN_OFFSET),
    ),
)

DEPTH = QuantityKind(
    name="depth",
    units=(
        UnitDef("mm", "millimetre"),
        UnitDef("cm", "centimetre", MM_PER_CM),
        UnitDef("in", "inch", MM_PER_INCH),
    ),
)

SPEED = QuantityKind(
    name="speed",
    units=(
        UnitDef("m/s", "metre per second"),
        UnitDef("km/h", "kilometre per hour", MS_PER_KMH),
        UnitDef("mph", "mile per hour", MS_PER_MPH),
        UnitDef("kn", "knot", MS_PER_KNOT),
    ),
)

PRESSURE = QuantityKind(
    name="pressure",
    units=(
        UnitDef("hPa", "hectopascal"),
        UnitDef("mb", "millibar"),
        UnitDef("kPa", "kilopascal", HPA_PER_KPA),
        UnitDef("inHg", "inch of mercury", HPA_PER_INHG),
        UnitDef("mmHg", "millimetre of mercury", HPA_PER_MMHG),
    ),
)

RATIO = QuantityKind(
    name="ratio",
    units=(
        UnitDef("%", "percent"),
        UnitDef("fraction", "decimal fraction", 100.0),
    ),
)

QUANTITY_KINDS: Dict[str, QuantityKind] = {
    kind.name: kind for kind in (TEMPERATURE, DEPTH, SPEED, PRESSURE, RATIO)
}

_UNIT_INDEX: Dict[str, QuantityKind] = {
    unit.symbol: kind for kind in QUANTITY_KINDS.values() for unit in kind.units
}


def get_kind(name: str) -> QuantityKind:
    """Look up a quantity kind by name."""
    try:
        return QUANTITY_KINDS[name]
    except KeyError:
        raise ValueError(f"Unknown quantity kind: {name}") from None


def kind_of(symbol: str) -> QuantityKind:
    """Return the kind a unit symbol belongs to."""
    try:
        return _UNIT_INDEX[symbol]
    except KeyError:
        raise ValueError(f"Unknown unit: {symbol}") from None


@total_ordering
@dataclass(frozen=True, eq=False)
class Quantity:
    """A finite value expressed in a known unit.

    Equality and ordering compare canonical magnitudes, so ``Quantity(1, "in")``
    equals ``Quantity(25.4, "mm")``. Comparing different kinds is an error.
    """
    value: float
    unit: str

    def __post_init__(self):
        kind_of(self.unit)
        if not math.isfinite(self.value):
            raise InvalidQuantityError(f"Invalid quantity value: {self.value} {self.unit}")

    @property
    def kind(self) -> QuantityKind:
        return kind_of(self.unit)

    def magnitude(self, unit: Optional[str] = None) -> float:
        """Numeric value in ``unit`` (canonical unit when omitted)."""
        kind = self.kind
        canonical = kind.to_canonical(self.value, self.unit)
        if unit is None or unit == kind.canonical_unit:
            return canonical
        return kind.from_canonical(canonical, unit)

    def to(self, unit: str) -> "Quantity":
        return Quantity(self.magnitude(unit), unit)

    def _canonical_for(self, other: "Quantity") -> Tuple[float, float]:
        if self.kind is not other.kind:
            raise ValueError(
                f"Cannot compare {self.kind.name} with {other.kind.name}"
            )
        return self.magnitude(), other.magnitude()

    def __eq__(self, other):
        if not isinstance(other, Quantity):
            return NotImplemented
        mine, theirs = self._canonical_for(other)
        return mine == theirs

    def __lt__(self, other):
        if not isinstance(other, Quantity):
            return NotImplemented
        mine, theirs = self._canonical_for(other)
        return mine < theirs

    def __hash__(self):
        return hash((self.kind.name, self.magnitude()))

    def __str__(self):
        return f"{self.value:g} {self.unit}"


class QuantityAdapter(ABC):
    """Capabilities the rolling aggregator needs from a quantity type."""

    @property
    @abstractmethod
    def canonical_unit(self) -> str:
        """Unit all magnitude arithmetic is performed in."""

    @abstractmethod
    def to_magnitude(self, quantity: Any, unit: Optional[str] = None) -> float:
        """Scalar value of ``quantity`` in ``unit`` (canonical when omitted)."""

    @abstractmethod
    def from_magnitude(self, magnitude: float, unit: Optional[str] = None) -> Any:
        """Build a quantity; raises InvalidQuantityError for bad magnitudes."""

    @abstractmethod
    def zero(self) -> Any:
        """The zero quantity of this kind."""

    @abstractmethod
    def subtract(self, a: Any, b: Any) -> Any:
        """``a - b`` for two quantities of this kind."""

    @abstractmethod
    def encode(self, quantity: Any) -> Any:
        """JSON-safe representation of ``quantity``."""

    @abstractmethod
    def decode(self, payload: Any) -> Any:
        """Inverse of ``encode``."""

    def compare(self, a: Any, b: Any) -> int:
        """Return -1, 0 or 1 as ``a`` is below, equal to or above ``b``."""
        return (a > b) - (a < b)

    def equals(self, a: Any, b: Any) -> bool:
        return a == b


class UnitQuantityAdapter(QuantityAdapter):
    """Adapter for ``Quantity`` values of a single kind."""

    def __init__(self, kind: Union[str, QuantityKind], canonical_unit: Optional[str] = None):
        """
        Args:
            kind: Quantity kind or its name (e.g. "depth")
            canonical_unit: Override for the arithmetic unit; defaults to the
                kind's first unit
        """
        self.kind = get_kind(kind) if isinstance(kind, str) else kind
        if canonical_unit is None:
            canonical_unit = self.kind.canonical_unit
        self.kind.unit(canonical_unit)
        self._canonical_unit = canonical_unit

    @property
    def canonical_unit(self) -> str:
        return self._canonical_unit

    def _check(self, quantity: Quantity) -> Quantity:
        if quantity.kind is not self.kind:
            raise ValueError(
                f"Expected a {self.kind.name} quantity, got {quantity.kind.name}"
            )
        return quantity

    def to_magnitude(self, quantity: Quantity, unit: Optional[str] = None) -> float:
        return self._check(quantity).magnitude(unit or self._canonical_unit)

    def from_magnitude(self, magnitude: float, unit: Optional[str] = None) -> Quantity:
        return Quantity(magnitude, unit or self._canonical_unit)

    def zero(self) -> Quantity:
        return Quantity(0.0, self._canonical_unit)

    def subtract(self, a: Quantity, b: Quantity) -> Quantity:
        # Result is a difference in a's unit; offsets cancel out.
        self._check(a)
        return Quantity(a.value - self._check(b).magnitude(a.unit), a.unit)

    def encode(self, quantity: Quantity) -> Dict[str, Any]:
        return {"value": quantity.value, "unit": quantity.unit}

    def decode(self, payload: Dict[str, Any]) -> Quantity:
        return self._check(Quantity(float(payload["value"]), payload["unit"]))


class ScalarAdapter(QuantityAdapter):
    """Adapter for unitless float readings."""

    def __init__(self, unit: str = ""):
        self._unit = unit

    @property
    def canonical_unit(self) -> str:
        return self._unit

    def to_magnitude(self, quantity: float, unit: Optional[str] = None) -> float:
        magnitude = float(quantity)
        if not math.isfinite(magnitude):
            raise InvalidQuantityError(f"Invalid quantity value: {quantity}")
        return magnitude

    def from_magnitude(self, magnitude: float, unit: Optional[str] = None) -> float:
        if not math.isfinite(magnitude):
            raise InvalidQuantityError(f"Invalid quantity value: {magnitude}")
        return float(magnitude)

    def zero(self) -> float:
        return 0.0

    def subtract(self, a: float, b: float) -> float:
        return float(a) - float(b)

    def encode(self, quantity: float) -> float:
        return quantity

    def decode(self, payload: Any) -> float:
        return float(payload)
