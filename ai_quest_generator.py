"""OpenAI-backed quest generation with the template generator as a silent fallback."""
import json
import logging

import openai

from errors import GenerationFailure
from quest_engine import CATEGORIES, DIFFICULTIES, STATS, QuestDraft, classify, clamp, generate_quick_quest

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_CHARACTER_CLASS = "Life Adventurer"
MAX_TITLE_LENGTH = 60

SYSTEM_MESSAGE = ("You are a creative RPG game master who transforms mundane real-world tasks into exciting fantasy quests. "
                  "Always return valid JSON. Make the quests feel achievable yet epic. Carefully analyze each task to determine "
                  "which character stat (strength, wisdom, endurance, charisma) it would most realistically improve.")


def build_prompt(task, user_level, character_class):
    return f"""Transform this real-world task into an exciting RPG quest:

TASK: "{task}"
USER LEVEL: {user_level}
CHARACTER CLASS: {character_class}

Create a motivating RPG quest that makes this task feel epic. The quest should:
- Have an exciting, fantasy-themed title (keep it under {MAX_TITLE_LENGTH} characters)
- Include a compelling 2-3 sentence description with adventure elements
- Feel appropriately challenging for level {user_level}
- Award XP based on task difficulty and user level (10-100 XP)
- Use RPG terminology (defeat, vanquish, master, conquer, etc.)
- Match the difficulty to the task complexity
- Determine which character stat this task would most improve

Character Stats Guide:
- STRENGTH: Physical tasks, cleaning, organizing, building, manual work
- WISDOM: Learning, studying, reading, research, creative work, problem-solving
- ENDURANCE: Exercise, sports, physical fitness, health-related activities
- CHARISMA: Social interactions, meetings, presentations, networking, communication

Return ONLY valid JSON in this exact format:
{{"title": "Epic quest title with RPG flair", "description": "Compelling quest description with fantasy elements and motivation.", "xp_reward": 50, "difficulty": "medium", "category": "daily_life", "primary_stat": "strength"}}

Examples:
- "Do laundry" -> Title: "Cleanse the Cursed Garments", Category: "home", Primary Stat: "strength"
- "Exercise for 30 minutes" -> Title: "Train with the Ancient Fitness Masters", Category: "health", Primary Stat: "endurance"
- "Study for exam" -> Title: "Unlock the Forbidden Knowledge Scrolls", Category: "education", Primary Stat: "wisdom"
- "Give a presentation" -> Title: "Address the Council of Nobles", Category: "career", Primary Stat: "charisma"

Difficulties: {', '.join(DIFFICULTIES)}
Categories: {', '.join(c for c in CATEGORIES if c != 'general')}
Primary Stats: {', '.join(STATS)}"""


def parse_quest(content, task, user_level):
    """Validate a raw model reply and turn it into a QuestDraft.

    Raises GenerationFailure when the reply is not a JSON object or lacks a
    title, description or numeric xp_reward. Everything else is repaired.
    """
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        raise GenerationFailure(f"Malformed JSON from model: {e}") from e
    if not isinstance(data, dict):
        raise GenerationFailure("Model reply is not a JSON object")
    if not data.get('title') or not data.get('description') or not data.get('xp_reward'):
        raise GenerationFailure("Invalid quest data structure")
    try:
        raw_xp = int(float(data['xp_reward']))
    except (TypeError, ValueError) as e:
        raise GenerationFailure(f"Non-numeric xp_reward: {data['xp_reward']!r}") from e

    category = data.get('category') if data.get('category') in CATEGORIES else "general"
    difficulty = data.get('difficulty') if data.get('difficulty') in DIFFICULTIES else "medium"
    primary_stat = data.get('primary_stat')
    if primary_stat not in STATS:
        primary_stat = classify(task, category)

    level_multiplier = max(1, int(user_level) // 5 + 1)
    title = str(data['title'])
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH - 3] + "..."
    return QuestDraft(title=title, description=str(data['description']),
                      xp_reward=min(200, clamp(raw_xp, 10, 100) * level_multiplier),
                      difficulty=difficulty, category=category, primary_stat=primary_stat)


class AIQuestGenerator:
    """Single-attempt quest generation against an OpenAI chat model."""

    def __init__(self, client, model=DEFAULT_MODEL, timeout=10.0):
        self.client = client
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_api_key(cls, api_key, model=DEFAULT_MODEL, timeout=10.0):
        return cls(openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0), model=model, timeout=timeout)

    def generate(self, task, user_level=1, character_class=DEFAULT_CHARACTER_CLASS):
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": SYSTEM_MESSAGE},
                          {"role": "user", "content": build_prompt(task, user_level, character_class)}],
                temperature=0.8, max_tokens=400, timeout=self.timeout)
        except openai.OpenAIError as e:
            raise GenerationFailure(f"AI request failed: {e}") from e
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise GenerationFailure("No response from AI") from e
        if not content or not content.strip():
            raise GenerationFailure("No response from AI")
        return parse_quest(content.strip(), task, user_level)


def generate_epic_quest(task, user_level=1, character_class=DEFAULT_CHARACTER_CLASS, generator=None):
    """Try the AI generator once; any failure falls back to the template quest."""
    if generator is None:
        return generate_quick_quest(task, user_level)
    try:
        return generator.generate(task, user_level, character_class)
    except GenerationFailure as e:
        log.warning("AI quest generation failed, using template: %s", e)
    except Exception:
        log.exception("Unexpected error from AI quest generator, using template")
    return generate_quick_quest(task, user_level)
