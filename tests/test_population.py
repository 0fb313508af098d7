import os
import sys
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from nation import population
from nation.models import NaturalResources, Population


def make_population(**overrides):
    values = dict(men=5, women=5, children=0, workers=7, soldiers=0, scientists=0, mood=70)
    values.update(overrides)
    return Population(**values)


def test_can_assign_checks_unassigned_and_role_counts():
    people = make_population()
    assert population.can_assign(people, "soldiers", 3)
    assert not population.can_assign(people, "soldiers", 4)
    assert population.can_assign(people, "workers", -7)
    assert not population.can_assign(people, "workers", -8)
    assert not population.can_assign(people, "workers", 0)
    assert not population.can_assign(people, "priests", 1)


def test_grow_without_children_or_women():
    people = make_population(women=0)
    population.grow(people)
    assert (people.men, people.women, people.children) == (5, 0, 0)


def test_coming_of_age_splits_odd_counts_towards_women():
    people = make_population(women=0, children=150)
    population.grow(people)
    # floor(150 * 0.02) = 3 -> 1 man, 2 women
    assert (people.men, people.women, people.children) == (6, 2, 147)


def test_attrition_without_role_overflow_keeps_roles():
    people = make_population(men=40, women=40, children=20, workers=10, soldiers=5)
    population.apply_annual_attrition(people)
    assert (people.men, people.women, people.children) == (38, 38, 19)
    assert (people.workers, people.soldiers) == (10, 5)


def test_feed_well_fed():
    people = make_population(mood=100)
    natural = NaturalResources(food=25)
    assert population.feed(people, natural) == 0
    assert natural.food == 5
    assert people.mood == 100


def test_feed_shortage_floors_food_at_zero():
    people = make_population(men=50, women=50, children=100, mood=3)
    natural = NaturalResources(food=40)
    penalty = population.feed(people, natural)
    # 400 needed, 360 short -> penalty 9
    assert penalty == 9
    assert natural.food == 0
    assert people.mood == 0
    assert people.children == 91
    assert (people.men, people.women) == (48, 48)
