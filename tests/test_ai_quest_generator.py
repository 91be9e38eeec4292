"""AI quest generator and its template fallback."""

import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from ai_quest_generator import AIQuestGenerator, build_prompt, generate_epic_quest, parse_quest
from errors import GenerationFailure
from quest_engine import STATS, generate_quick_quest


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def fake_generator(content=None, error=None, timeout=5.0):
    completions = FakeCompletions(content, error)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return AIQuestGenerator(client, timeout=timeout), completions


def reply(**overrides):
    data = {"title": "Cleanse the Cursed Garments", "description": "Wash away the grime of battle.",
            "xp_reward": 40, "difficulty": "medium", "category": "home", "primary_stat": "strength"}
    data.update(overrides)
    return json.dumps(data)


def test_valid_reply_is_used():
    generator, completions = fake_generator(reply())
    quest = generate_epic_quest("Do laundry", 1, generator=generator)
    assert quest.title == "Cleanse the Cursed Garments"
    assert quest.xp_reward == 40
    assert quest.category == "home"
    assert len(completions.calls) == 1
    call = completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["timeout"] == 5.0
    assert '"Do laundry"' in call["messages"][1]["content"]


def test_xp_is_clamped_and_scaled_by_level():
    assert parse_quest(reply(xp_reward=500), "task", 1).xp_reward == 100
    assert parse_quest(reply(xp_reward=3), "task", 1).xp_reward == 10
    # level 12 -> multiplier floor(12/5)+1 = 3
    assert parse_quest(reply(xp_reward=40), "task", 12).xp_reward == 120
    assert parse_quest(reply(xp_reward=100), "task", 30).xp_reward == 200


def test_long_title_is_truncated():
    quest = parse_quest(reply(title="A" * 80), "task", 1)
    assert len(quest.title) == 60
    assert quest.title.endswith("...")


def test_invalid_primary_stat_is_reclassified():
    quest = parse_quest(reply(primary_stat="luck", category="health"), "Stretch", 1)
    assert quest.primary_stat == "endurance"
    quest = parse_quest(reply(primary_stat=None, category=None), "Fix the door", 1)
    assert quest.category == "general"
    assert quest.primary_stat == "strength"


def test_invalid_difficulty_defaults_to_medium():
    assert parse_quest(reply(difficulty="legendary"), "task", 1).difficulty == "medium"


@pytest.mark.parametrize("content", [
    "not json at all",
    "[1, 2, 3]",
    reply(title=""),
    reply(description=None),
    reply(xp_reward=0),
    reply(xp_reward="lots"),
])
def test_bad_replies_raise_generation_failure(content):
    with pytest.raises(GenerationFailure):
        parse_quest(content, "task", 1)


@pytest.mark.parametrize("content", ["", "   ", None, "{oops"])
def test_malformed_reply_falls_back_to_template(content):
    generator, _ = fake_generator(content)
    quest = generate_epic_quest("Do laundry", 4, generator=generator)
    assert quest == generate_quick_quest("Do laundry", 4)


def test_timeout_falls_back_to_template():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    generator, _ = fake_generator(error=openai.APITimeoutError(request=request))
    quest = generate_epic_quest("Study for exam", 2, generator=generator)
    assert quest == generate_quick_quest("Study for exam", 2)


def test_unexpected_client_error_falls_back_to_template():
    generator, _ = fake_generator(error=RuntimeError("boom"))
    quest = generate_epic_quest("Cook dinner", 1, generator=generator)
    assert quest == generate_quick_quest("Cook dinner", 1)
    assert quest.primary_stat in STATS


def test_no_generator_uses_template():
    assert generate_epic_quest("Cook dinner", 1) == generate_quick_quest("Cook dinner", 1)


def test_prompt_mentions_constraints():
    prompt = build_prompt("Walk the dog", 3, "Ranger")
    assert "Walk the dog" in prompt
    assert "CHARACTER CLASS: Ranger" in prompt
    assert "10-100 XP" in prompt
    assert "strength, wisdom, endurance, charisma" in prompt
