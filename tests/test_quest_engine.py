"""Stat classifier, XP rule, template quests and leveling."""

import pytest

from quest_engine import (CATEGORIES, DIFFICULTIES, GENERIC_TITLES, STATS, classify, generate_quick_quest, is_level_up,
                          level_for_xp, level_progress, xp_reward)


@pytest.mark.parametrize("task, category, expected", [
    ("Go for a run", "general", "endurance"),
    ("Anything", "health", "endurance"),
    ("Read a chapter of my book", "general", "wisdom"),
    ("Call grandma", "general", "charisma"),
    ("Prepare slides", "career", "charisma"),
    ("Fix the sink", "general", "strength"),
    ("Paint the fence", "general", "wisdom"),
    ("Send the weekly email", "general", "charisma"),
    ("Check the budget", "general", "wisdom"),
    ("Do laundry", "home", "strength"),
    ("Water plants", "daily_life", "strength"),
    ("Water plants", "general", "strength"),
    ("Water plants", "creative", "wisdom"),
])
def test_classify_rules(task, category, expected):
    assert classify(task, category) == expected


def test_classify_first_matching_bucket_wins():
    # "workout" (endurance) is checked before "study" (wisdom)
    assert classify("study after workout", "education") == "endurance"
    assert classify("RUN", None) == "endurance"


def test_classify_is_total_and_deterministic():
    for task in ("", "zzz", None, 42):
        for category in CATEGORIES + ("nonsense", None):
            first = classify(task, category)
            assert first in STATS
            assert classify(task, category) == first


def test_xp_reward_examples():
    assert xp_reward("epic", 9) == 130
    assert xp_reward("easy", 1) == 30
    assert xp_reward("mystery", 1) == 50
    assert xp_reward("epic", 100) == 200


def test_xp_reward_bounded_and_monotonic_in_level():
    for difficulty in DIFFICULTIES + ("unknown",):
        previous = 0
        for level in range(1, 60):
            reward = xp_reward(difficulty, level)
            assert 10 <= reward <= 200
            assert reward >= previous
            previous = reward


def test_quick_quest_do_laundry():
    quest = generate_quick_quest("Do laundry", 1)
    assert quest.category == "home"
    assert quest.primary_stat == "strength"
    assert quest.difficulty == "medium"
    assert quest.xp_reward == 50


@pytest.mark.parametrize("task, category, difficulty", [
    ("Morning workout", "health", "medium"),
    ("Tidy the garage", "home", "medium"),
    ("Study for the exam", "education", "hard"),
    ("Finish the project plan", "career", "medium"),
    ("Cook dinner", "daily_life", "easy"),
])
def test_quick_quest_buckets(task, category, difficulty):
    quest = generate_quick_quest(task, 3)
    assert (quest.category, quest.difficulty) == (category, difficulty)
    assert quest.xp_reward == xp_reward(difficulty, 3)
    assert quest.primary_stat == classify(task, category)


def test_quick_quest_generic_fallback():
    quest = generate_quick_quest("Water the plants", 1)
    assert quest.category == "general"
    assert quest.difficulty == "medium"
    assert quest.title in GENERIC_TITLES
    assert quest.description


@pytest.mark.parametrize("task", ["", "???", "x" * 500, "Épée practice", None])
def test_quick_quest_always_valid(task):
    quest = generate_quick_quest(task, 7)
    assert 10 <= quest.xp_reward <= 200
    assert quest.primary_stat in STATS
    assert set(quest.to_dict()) == {"title", "description", "xp_reward", "difficulty", "category", "primary_stat"}


def test_level_for_xp():
    assert level_for_xp(0) == 1
    assert level_for_xp(999) == 1
    assert level_for_xp(1000) == 2
    assert level_for_xp(2500) == 3
    assert level_for_xp(None) == 1
    levels = [level_for_xp(xp) for xp in range(0, 10000, 137)]
    assert levels == sorted(levels)


def test_level_progress():
    progress = level_progress(2500)
    assert progress["level"] == 3
    assert progress["current_level_xp"] == 2000
    assert progress["progress_xp"] == 500
    assert progress["needed_xp"] == 1000
    assert progress["progress_percentage"] == 50


def test_level_up_detection():
    assert is_level_up(950, 1000)
    assert not is_level_up(1000, 1999)
