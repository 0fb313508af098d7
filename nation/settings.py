# Settings for the nation simulation

# Eras as (name, first year, multiplier applied to research costs).
# Each era runs until the next one starts; the last one is open-ended.
ERAS = [
    ("1925–1950", 1925, 1.0),
    ("1950–1980", 1950, 1.5),
    ("1980–2000", 1980, 2.0),
    ("2000–2025", 2000, 2.5),
    ("2025+", 2025, 3.0),
]

FIRST_YEAR = ERAS[0][1]

# Resource stats are normalised scores.
RESOURCE_MIN = 0.0
RESOURCE_MAX = 100.0

# Investment
BASE_INVESTMENT_RATE = 0.05
MAX_GROWTH_PERCENTAGE = 0.10
MIN_GROWTH_MODIFIER = 0.1
MAX_GROWTH_MODIFIER = 10.0
INVESTMENT_MOOD_BONUS = 2

# Natural resources consumed per investment, by stat.
INVESTMENT_COSTS = {
    "stability": {"food": 10, "minerals": 5},
    "economy": {"wood": 15, "minerals": 10, "land": 5},
    "military": {"minerals": 20, "food": 10},
    "diplomacy": {"food": 5, "water": 10},
    "culture": {"wood": 10, "water": 5},
}

# Research cost (subtracted from stats) by tech id prefix.
RESEARCH_COSTS = {
    "gov_": {"stability": 5, "diplomacy": 3},
    "econ_": {"economy": 8, "stability": 2},
    "mil_": {"military": 10, "economy": 5},
    "cul_": {"culture": 8, "diplomacy": 3},
}
DEFAULT_RESEARCH_COST = {"stability": 3, "economy": 3}

# Seconds the "last researched" notice stays relevant for presenters.
LAST_RESEARCH_DISPLAY_SECONDS = 3.0

# Population dynamics (monthly unless stated otherwise)
MONTHLY_BIRTH_RATE = 0.10
COMING_OF_AGE_RATE = 0.02
ANNUAL_LOSS_RATE = 0.05
FOOD_PER_PERSON = 2
WELL_FED_MOOD_BONUS = 1
STARVATION_PENALTY_THRESHOLD = 5

# Output per assigned person each month.
WORKER_YIELDS = {"food": 3, "wood": 2, "minerals": 1, "water": 2}
SCIENTIST_YIELDS = {"stability": 0.2, "culture": 0.3}
SOLDIER_YIELDS = {"military": 0.3, "stability": 0.1}

# Yearly objectives
RESOURCE_OBJECTIVE_FACTOR = 1.3
POPULATION_OBJECTIVE_FACTOR = 1.25
STOCKPILE_OBJECTIVE_FACTOR = 1.2
POPULATION_OBJECTIVE_AFTER = FIRST_YEAR + 2
TECH_OBJECTIVE_AFTER = FIRST_YEAR + 5
MOOD_OBJECTIVE_TARGET = 70

# Starting position used by ``reset_game``.
INITIAL_RESOURCES = {
    "stability": 10,
    "economy": 5,
    "military": 3,
    "diplomacy": 1,
    "culture": 2,
}
INITIAL_NATURAL_RESOURCES = {
    "wood": 500,
    "minerals": 300,
    "food": 400,
    "water": 600,
    "land": 1000,
}
INITIAL_POPULATION = {
    "men": 5,
    "women": 5,
    "children": 0,
    "workers": 7,
    "soldiers": 0,
    "scientists": 0,
    "mood": 70,
    "months_passed": 0,
}
DEFAULT_NATION_NAME = "New Nation"
DEFAULT_LEADER_NAME = "Anonymous Leader"

# National debt
BASE_INTEREST_RATE = 0.05
MAX_INTEREST_RATE = 0.15
RISK_PREMIUM_THRESHOLD = 500
RISK_PREMIUM_PER_UNIT = 0.00005
DEBT_CRISIS_THRESHOLD = 1000
DEBT_COLLAPSE_THRESHOLD = 2000

# Random disasters are off unless a Game is created with ``disasters=True``.
DISASTER_CHANCE = 0.03

# Economic cycles (``economic_cycles=True``): the first phase change falls in
# this year, later ones after the current phase's rolled duration.
FIRST_ECONOMIC_CYCLE_YEAR = 1930
# (min, max) years and cost multiplier range per phase.
ECONOMIC_PHASES = {
    "boom": {"duration": (2, 4), "multiplier": (1.3, 1.6), "description": "Economic Boom"},
    "bust": {"duration": (1, 3), "multiplier": (0.4, 0.7), "description": "Economic Recession"},
    "recovery": {"duration": (2, 3), "multiplier": (0.8, 1.1), "description": "Economic Recovery"},
    "stable": {"duration": (3, 6), "multiplier": (0.9, 1.1), "description": "Stable Economy"},
}
BUST_MIGRATION_RATE = 0.05

# Research breakthroughs (``breakthroughs=True``)
BREAKTHROUGH_MIN_SCIENTISTS = 3
BREAKTHROUGH_BASE_CHANCE = 0.01
BREAKTHROUGH_CHANCE_PER_SCIENTIST = 0.005
BREAKTHROUGH_EDUCATION_BONUS = {"cul_higher_education": 0.02, "cul_public_education": 0.01}
