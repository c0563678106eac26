"""
Quantum numbers and spectral-line identifiers.

Gas optical-property callbacks key their line data by these identifiers;
the scattering solver itself never inspects them. Everything here is
immutable, and the species registry is an explicit object handed to
whoever needs it rather than process-wide state.

Text forms:
    "H2O-161 TR UP J 1/1 Ka 0/1 LO J 0/1 Ka 0/1"   transition
    "O2-66 EN J 1/1 N 1/1"                          energy level
    "CO2-626 ALL"                                   every line of a species
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from types import MappingProxyType

from .errors import InvalidConfiguration

# Recognised quantum number names, in canonical output order
QUANTUM_NUMBER_NAMES: tuple[str, ...] = (
    "J",
    "dJ",
    "M",
    "N",
    "dN",
    "S",
    "F",
    "K",
    "Ka",
    "Kc",
    "Omega",
    "i",
    "Lambda",
    "alpha",
    "Sym",
    "parity",
    "v1",
    "v2",
    "l2",
    "v3",
    "v4",
    "v5",
    "v6",
    "l",
    "pm",
    "r",
    "S_global",
    "X",
    "n_global",
    "C",
    "Hund",
)

_NAME_SET = frozenset(QUANTUM_NUMBER_NAMES)


def _to_rational(value: Fraction | int | str) -> Fraction:
    if isinstance(value, Fraction):
        return value
    if isinstance(value, bool):
        raise InvalidConfiguration("quantum_number", f"cannot use boolean {value!r} as a quantum number")
    if isinstance(value, int):
        return Fraction(value)
    if isinstance(value, str):
        try:
            return Fraction(value.strip())
        except (ValueError, ZeroDivisionError) as e:
            raise InvalidConfiguration("quantum_number", f"cannot parse {value!r} as a rational") from e
    raise InvalidConfiguration("quantum_number", f"unsupported value {value!r}")


def _format_rational(value: Fraction) -> str:
    return f"{value.numerator}/{value.denominator}"


class QuantumNumbers(Mapping[str, Fraction]):
    """
    Immutable set of defined quantum numbers.

    Undefined numbers are simply absent. Two sets *match* (``compare``)
    when every number defined in both has the same value, so an undefined
    number acts as a wildcard.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Fraction | int | str] | None = None):
        parsed: dict[str, Fraction] = {}
        for name, value in (values or {}).items():
            if name not in _NAME_SET:
                raise InvalidConfiguration("quantum_number", f"unknown quantum number {name!r}")
            parsed[name] = _to_rational(value)
        # Canonical order regardless of input order
        self._values = {name: parsed[name] for name in QUANTUM_NUMBER_NAMES if name in parsed}

    def __getitem__(self, name: str) -> Fraction:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        return hash(tuple(self._values.items()))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, QuantumNumbers):
            return self._values == other._values
        return NotImplemented

    def __repr__(self) -> str:
        return f"QuantumNumbers({str(self)!r})"

    def __str__(self) -> str:
        return " ".join(f"{name} {_format_rational(value)}" for name, value in self._values.items())

    def with_value(self, name: str, value: Fraction | int | str) -> QuantumNumbers:
        """Copy with ``name`` set to ``value``."""
        values = dict(self._values)
        values[name] = value
        return QuantumNumbers(values)

    def compare(self, other: QuantumNumbers) -> bool:
        """True if all numbers defined in both sets agree."""
        return all(other._values[name] == value for name, value in self._values.items() if name in other._values)

    @classmethod
    def from_tokens(cls, tokens: Iterable[str]) -> QuantumNumbers:
        """Parse alternating ``name value`` tokens."""
        tokens = list(tokens)
        if len(tokens) % 2:
            raise InvalidConfiguration("quantum_numbers", f"expected name/value pairs, got {' '.join(tokens)!r}")
        return cls(dict(zip(tokens[::2], tokens[1::2])))

    @classmethod
    def from_string(cls, text: str) -> QuantumNumbers:
        return cls.from_tokens(text.split())


class QuantumIdentifierType(Enum):
    """What a QuantumIdentifier refers to."""

    NONE = "NONE"
    ALL = "ALL"
    TRANSITION = "TR"
    ENERGY_LEVEL = "EN"


class SpeciesRegistry:
    """
    Immutable registry of species and their isotopologues.

    Args:
        species: Mapping of species name to isotopologue names, e.g.
            ``{"H2O": ["161", "181"], "O2": ["66"]}``.

    Example:
        >>> registry = SpeciesRegistry({"H2O": ["161", "181"], "O2": ["66"]})
        >>> registry.index("O2")
        1
        >>> registry.isotopologue_index("H2O", "181")
        1
    """

    def __init__(self, species: Mapping[str, Iterable[str]]):
        self._species: Mapping[str, tuple[str, ...]] = MappingProxyType(
            {name: tuple(isotopologues) for name, isotopologues in species.items()}
        )
        self._order: tuple[str, ...] = tuple(self._species)

    @property
    def names(self) -> tuple[str, ...]:
        return self._order

    def __contains__(self, species: object) -> bool:
        return species in self._species

    def __len__(self) -> int:
        return len(self._order)

    def index(self, species: str) -> int:
        """Position of ``species``, which is its row in a VMR field."""
        try:
            return self._order.index(species)
        except ValueError:
            raise InvalidConfiguration("species", f"{species!r} is not registered") from None

    def isotopologues(self, species: str) -> tuple[str, ...]:
        self.index(species)
        return self._species[species]

    def isotopologue_index(self, species: str, isotopologue: str) -> int:
        isotopologues = self.isotopologues(species)
        if isotopologue not in isotopologues:
            raise InvalidConfiguration(
                "isotopologue", f"{species}-{isotopologue} is not registered (known: {list(isotopologues)})"
            )
        return isotopologues.index(isotopologue)

    def validate(self, species: str, isotopologue: str) -> None:
        """Raise InvalidConfiguration unless the pair is registered. ``*`` matches any isotopologue."""
        if isotopologue == "*":
            self.index(species)
        else:
            self.isotopologue_index(species, isotopologue)


@dataclass(frozen=True)
class QuantumIdentifier:
    """
    Identifies a transition, an energy level, or all lines of a species.

    Attributes:
        species: Species name, e.g. "H2O".
        isotopologue: Isotopologue tag, e.g. "161", or "*" for any.
        type: What the identifier refers to.
        upper: Upper-level numbers (transitions only).
        lower: Lower-level numbers (transitions only).
        level: Level numbers (energy levels only).
    """

    species: str
    isotopologue: str
    type: QuantumIdentifierType
    upper: QuantumNumbers = field(default_factory=QuantumNumbers)
    lower: QuantumNumbers = field(default_factory=QuantumNumbers)
    level: QuantumNumbers = field(default_factory=QuantumNumbers)

    @property
    def species_tag(self) -> str:
        return f"{self.species}-{self.isotopologue}"

    def __str__(self) -> str:
        if self.type is QuantumIdentifierType.TRANSITION:
            text = f"{self.species_tag} TR UP {self.upper} LO {self.lower}"
        elif self.type is QuantumIdentifierType.ENERGY_LEVEL:
            text = f"{self.species_tag} EN {self.level}"
        else:
            text = f"{self.species_tag} {self.type.value}"
        return " ".join(text.split())

    @classmethod
    def from_string(cls, text: str, registry: SpeciesRegistry | None = None) -> QuantumIdentifier:
        """
        Parse the text form.

        Args:
            text: Identifier text, see the module docstring.
            registry: If given, the species/isotopologue must be registered.

        Raises:
            InvalidConfiguration: Malformed text or unregistered species.
        """
        tokens = text.split()
        if len(tokens) < 2:
            raise InvalidConfiguration("quantum_identifier", f"too short: {text!r}")
        species, sep, isotopologue = tokens[0].rpartition("-")
        if not sep or not species or not isotopologue:
            raise InvalidConfiguration("quantum_identifier", f"expected SPECIES-ISOTOPOLOGUE, got {tokens[0]!r}")
        if registry is not None:
            registry.validate(species, isotopologue)

        try:
            id_type = QuantumIdentifierType(tokens[1])
        except ValueError:
            raise InvalidConfiguration("quantum_identifier", f"unknown identifier type {tokens[1]!r}") from None

        rest = tokens[2:]
        if id_type is QuantumIdentifierType.TRANSITION:
            if not rest or rest[0] != "UP" or "LO" not in rest:
                raise InvalidConfiguration("quantum_identifier", f"transition needs 'UP ... LO ...': {text!r}")
            split = rest.index("LO")
            upper = QuantumNumbers.from_tokens(rest[1:split])
            lower = QuantumNumbers.from_tokens(rest[split + 1 :])
            return cls(species, isotopologue, id_type, upper=upper, lower=lower)
        if id_type is QuantumIdentifierType.ENERGY_LEVEL:
            return cls(species, isotopologue, id_type, level=QuantumNumbers.from_tokens(rest))
        if rest:
            raise InvalidConfiguration("quantum_identifier", f"unexpected tokens after {id_type.value}: {rest}")
        return cls(species, isotopologue, id_type)

    def _same_species(self, other: QuantumIdentifier) -> bool:
        if self.species != other.species:
            return False
        return "*" in (self.isotopologue, other.isotopologue) or self.isotopologue == other.isotopologue

    def is_in(self, other: QuantumIdentifier) -> bool:
        """
        True if everything this identifier names is covered by ``other``.

        ALL covers every transition and level of its species; a transition
        is in another transition when both levels compare equal.
        """
        if QuantumIdentifierType.NONE in (self.type, other.type) or not self._same_species(other):
            return False
        if other.type is QuantumIdentifierType.ALL:
            return True
        if self.type is not other.type:
            return False
        if self.type is QuantumIdentifierType.TRANSITION:
            return self.upper.compare(other.upper) and self.lower.compare(other.lower)
        if self.type is QuantumIdentifierType.ENERGY_LEVEL:
            return self.level.compare(other.level)
        return False

    def in_upper(self, level: QuantumIdentifier) -> bool:
        """True if ``level`` (an energy level) matches this transition's upper level."""
        return (
            self.type is QuantumIdentifierType.TRANSITION
            and level.type is QuantumIdentifierType.ENERGY_LEVEL
            and self._same_species(level)
            and self.upper.compare(level.level)
        )

    def in_lower(self, level: QuantumIdentifier) -> bool:
        """True if ``level`` (an energy level) matches this transition's lower level."""
        return (
            self.type is QuantumIdentifierType.TRANSITION
            and level.type is QuantumIdentifierType.ENERGY_LEVEL
            and self._same_species(level)
            and self.lower.compare(level.level)
        )

    def upper_level(self) -> QuantumIdentifier:
        """Energy-level identifier of the upper state."""
        if self.type is not QuantumIdentifierType.TRANSITION:
            raise InvalidConfiguration("quantum_identifier", f"{self} is not a transition")
        return QuantumIdentifier(self.species, self.isotopologue, QuantumIdentifierType.ENERGY_LEVEL, level=self.upper)

    def lower_level(self) -> QuantumIdentifier:
        """Energy-level identifier of the lower state."""
        if self.type is not QuantumIdentifierType.TRANSITION:
            raise InvalidConfiguration("quantum_identifier", f"{self} is not a transition")
        return QuantumIdentifier(self.species, self.isotopologue, QuantumIdentifierType.ENERGY_LEVEL, level=self.lower)
