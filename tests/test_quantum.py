"""Tests for quantum numbers and spectral-line identifiers."""

from fractions import Fraction

import pytest
from streamrt import InvalidConfiguration, QuantumIdentifier, QuantumIdentifierType, QuantumNumbers, SpeciesRegistry


@pytest.fixture
def registry():
    return SpeciesRegistry({"H2O": ["161", "181"], "O2": ["66"]})


class TestQuantumNumbers:
    def test_parse_and_format(self):
        qn = QuantumNumbers.from_string("Ka 0 J 3/2")
        assert qn["J"] == Fraction(3, 2)
        assert qn["Ka"] == 0
        # Canonical order, rationals always written with a denominator
        assert str(qn) == "J 3/2 Ka 0/1"

    def test_equal_sets_hash_equal(self):
        a = QuantumNumbers({"J": 1, "N": 2})
        b = QuantumNumbers.from_string("N 2 J 1")
        assert a == b
        assert hash(a) == hash(b)

    def test_compare_treats_missing_as_wildcard(self):
        full = QuantumNumbers({"J": 1, "Ka": 0})
        partial = QuantumNumbers({"J": 1})
        assert full.compare(partial)
        assert partial.compare(full)
        assert not full.compare(QuantumNumbers({"J": 2}))

    def test_with_value_returns_copy(self):
        qn = QuantumNumbers({"J": 1})
        changed = qn.with_value("J", "2")
        assert qn["J"] == 1
        assert changed["J"] == 2

    @pytest.mark.parametrize("text", ["J", "Q 1", "J one", "J 1/0"])
    def test_malformed(self, text):
        with pytest.raises(InvalidConfiguration):
            QuantumNumbers.from_string(text)

    def test_boolean_rejected(self):
        with pytest.raises(InvalidConfiguration):
            QuantumNumbers({"J": True})


class TestSpeciesRegistry:
    def test_indices(self, registry):
        assert registry.names == ("H2O", "O2")
        assert registry.index("O2") == 1
        assert registry.isotopologue_index("H2O", "181") == 1
        assert "H2O" in registry
        assert len(registry) == 2

    def test_unknown_species(self, registry):
        with pytest.raises(InvalidConfiguration):
            registry.index("CO2")

    def test_unknown_isotopologue(self, registry):
        with pytest.raises(InvalidConfiguration, match="H2O-999"):
            registry.isotopologue_index("H2O", "999")

    def test_wildcard_isotopologue(self, registry):
        registry.validate("H2O", "*")


class TestQuantumIdentifier:
    def test_parse_transition(self, registry):
        qid = QuantumIdentifier.from_string("H2O-161 TR UP J 1/1 Ka 0/1 LO J 0/1 Ka 0/1", registry)
        assert qid.type is QuantumIdentifierType.TRANSITION
        assert qid.species_tag == "H2O-161"
        assert qid.upper["J"] == 1
        assert qid.lower["J"] == 0

    @pytest.mark.parametrize(
        "text",
        [
            "H2O-161 TR UP J 1/1 Ka 0/1 LO J 0/1 Ka 0/1",
            "O2-66 EN J 1/1 N 1/1",
            "H2O-181 ALL",
        ],
    )
    def test_text_form_is_stable(self, text):
        assert str(QuantumIdentifier.from_string(text)) == text

    @pytest.mark.parametrize(
        "text",
        ["H2O", "H2O161 ALL", "H2O-161 XX", "H2O-161 TR J 1 LO J 0", "H2O-161 ALL J 1"],
    )
    def test_malformed(self, text):
        with pytest.raises(InvalidConfiguration):
            QuantumIdentifier.from_string(text)

    def test_unregistered_species(self, registry):
        with pytest.raises(InvalidConfiguration):
            QuantumIdentifier.from_string("CO2-626 ALL", registry)

    def test_transition_in_all(self):
        line = QuantumIdentifier.from_string("H2O-161 TR UP J 1/1 LO J 0/1")
        assert line.is_in(QuantumIdentifier.from_string("H2O-161 ALL"))
        assert line.is_in(QuantumIdentifier.from_string("H2O-* ALL"))
        assert not line.is_in(QuantumIdentifier.from_string("H2O-181 ALL"))
        assert not line.is_in(QuantumIdentifier.from_string("O2-66 ALL"))

    def test_transition_matching(self):
        line = QuantumIdentifier.from_string("H2O-161 TR UP J 1/1 Ka 1/1 LO J 0/1")
        broad = QuantumIdentifier.from_string("H2O-161 TR UP J 1/1 LO J 0/1")
        other = QuantumIdentifier.from_string("H2O-161 TR UP J 2/1 LO J 1/1")
        assert line.is_in(broad)
        assert not line.is_in(other)

    def test_levels(self):
        line = QuantumIdentifier.from_string("O2-66 TR UP J 1/1 N 1/1 LO J 0/1 N 1/1")
        upper = line.upper_level()
        assert upper.type is QuantumIdentifierType.ENERGY_LEVEL
        assert line.in_upper(upper)
        assert line.in_lower(line.lower_level())
        assert not line.in_upper(line.lower_level())

    def test_levels_of_non_transition(self):
        with pytest.raises(InvalidConfiguration):
            QuantumIdentifier.from_string("O2-66 ALL").upper_level()
