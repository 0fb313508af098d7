import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from nation.technology import (
    TechGraph,
    TechGraphError,
    era_for_year,
    era_multiplier,
    load_tech_graph,
    parse_effect,
)


def make_graph(techs):
    return TechGraph.from_dict({"branches": [{"name": "Test", "technologies": techs}]})


def test_bundled_tree_loads_and_is_indexed():
    graph = load_tech_graph()
    assert len(graph) > 30
    assert set(graph.branches) == {"Government", "Economy", "Military", "Culture", "Science"}
    tech = graph.find_tech("gov_colonial_resistance")
    assert tech is not None
    assert tech.prerequisites == ()
    assert graph.find_tech("does_not_exist") is None


def test_is_available_requires_every_prerequisite():
    graph = load_tech_graph()
    assert graph.is_available("gov_colonial_resistance", [])
    assert not graph.is_available("gov_national_assembly", [])
    assert graph.is_available("gov_national_assembly", ["gov_colonial_resistance"])
    assert not graph.is_available("gov_democracy", ["gov_constitution"])
    assert graph.is_available("gov_democracy", ["gov_constitution", "gov_welfare_state"])
    assert not graph.is_available("unknown", [])


def test_available_techs_excludes_unlocked():
    graph = load_tech_graph()
    roots = {t.id for t in graph.available_techs([])}
    assert "gov_colonial_resistance" in roots
    assert "gov_national_assembly" not in roots

    after = {t.id for t in graph.available_techs(["gov_colonial_resistance"])}
    assert "gov_colonial_resistance" not in after
    assert {"gov_national_assembly", "gov_civil_service"} <= after


def test_cycle_is_rejected():
    with pytest.raises(TechGraphError):
        make_graph(
            [
                {"id": "a", "prerequisites": ["b"]},
                {"id": "b", "prerequisites": ["a"]},
            ]
        )


def test_dangling_prerequisite_is_rejected():
    with pytest.raises(TechGraphError):
        make_graph([{"id": "a", "prerequisites": ["missing"]}])


def test_duplicate_ids_are_rejected():
    with pytest.raises(TechGraphError):
        make_graph([{"id": "a"}, {"id": "a"}])


def test_parse_effect():
    assert parse_effect("+10% gdp") == (0.10, "gdp")
    assert parse_effect("-2% Morale") == (-0.02, "morale")
    assert parse_effect("unlocks nothing") is None


def test_era_ranges_are_half_open():
    assert era_for_year(1900).name == "1925–1950"
    assert era_for_year(1949).name == "1925–1950"
    assert era_for_year(1950).name == "1950–1980"
    assert era_for_year(1999).name == "1980–2000"
    assert era_for_year(2024).name == "2000–2025"
    assert era_for_year(2100).name == "2025+"


def test_era_multipliers():
    assert era_multiplier("1925–1950") == 1.0
    assert era_multiplier("1980–2000") == 2.0
    assert era_multiplier("2025+") == 3.0
    assert era_multiplier("bronze age") == 3.0
