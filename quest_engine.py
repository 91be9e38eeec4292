"""Quest rules: stat classification, XP rewards, template quests and leveling."""
import math
import random
from dataclasses import dataclass, asdict

# --- Constants ---
STATS = ("strength", "wisdom", "endurance", "charisma")
CATEGORIES = ("health", "education", "career", "home", "social", "creative", "daily_life", "finance", "general")
DIFFICULTIES = ("easy", "medium", "hard", "epic")
QUEST_STATUSES = ("active", "completed", "failed")

BASE_XP = {"easy": 30, "medium": 50, "hard": 75, "epic": 100}
DEFAULT_BASE_XP = 50
MIN_XP_REWARD, MAX_XP_REWARD = 10, 200
XP_PER_LEVEL = 1000
MAX_TASK_LENGTH = 500

# Ordered: the first bucket whose keywords hit (or whose categories include the hint) wins.
STAT_RULES = (
    (("exercise", "workout", "gym", "run", "jog", "swim", "bike", "yoga", "fitness", "sport"), ("health",), "endurance"),
    (("study", "read", "learn", "research", "book", "course", "exam", "homework", "practice", "skill"), ("education",), "wisdom"),
    (("call", "meet", "presentation", "interview", "networking", "social", "friend", "family", "date", "party", "collaborate"), ("social", "career"), "charisma"),
    (("clean", "organize", "build", "fix", "repair", "move", "lift", "carry", "install", "construct"), ("home",), "strength"),
    (("write", "draw", "paint", "design", "create", "compose"), ("creative",), "wisdom"),
    (("work", "project", "meeting", "email", "report"), ("career",), "charisma"),
    (("budget", "bank", "money", "invest", "finance"), ("finance",), "wisdom"),
)
CATEGORY_DEFAULT_STAT = {
    "health": "endurance", "education": "wisdom", "social": "charisma", "career": "charisma",
    "home": "strength", "daily_life": "strength", "creative": "wisdom", "finance": "wisdom",
}

QUEST_TEMPLATES = (
    (("exercise", "gym", "run", "workout"), "health", "medium",
     "Train with the Ancient Fitness Masters",
     "Channel your inner warrior and strengthen your body through the sacred rituals of physical training. "
     "Your muscles shall become as strong as dragon scales!"),
    (("clean", "tidy", "organize", "laundry"), "home", "medium",
     "Purge the Chaos Demons from Your Domain",
     "Wield the legendary tools of cleansing to banish the forces of disorder from your sacred space. "
     "Restore harmony and claim victory!"),
    (("study", "read", "learn", "exam"), "education", "hard",
     "Unlock the Forbidden Knowledge Scrolls",
     "Delve deep into the ancient texts to gain wisdom that will elevate your mind to new heights. "
     "Each page brings you closer to mastery!"),
    (("work", "meeting", "presentation", "project"), "career", "medium",
     "Complete the Professional Guild Mission",
     "Your expertise is needed to tackle this important quest for the Professional Guild. "
     "Show your mastery and earn the respect of your peers!"),
    (("cook", "meal", "recipe", "food"), "daily_life", "easy",
     "Craft the Legendary Feast",
     "Channel the power of the ancient culinary arts to create sustenance worthy of heroes. "
     "Your kitchen shall become a temple of nourishment!"),
)
GENERIC_TITLES = (
    "Conquer the Challenge of Destiny",
    "Master the Art of Achievement",
    "Complete the Sacred Mission",
    "Triumph Over the Task of Power",
    "Fulfill the Quest of Heroes",
)
GENERIC_DESCRIPTION = ("Brave adventurer, your quest awaits! Use your skills and determination to complete this important mission. "
                       "Victory will bring great rewards and advance your heroic journey!")


@dataclass
class QuestDraft:
    title: str
    description: str
    xp_reward: int
    difficulty: str
    category: str
    primary_stat: str

    def to_dict(self):
        return asdict(self)


def _lower(value):
    return value.lower() if isinstance(value, str) else ""


def classify(task, category=None):
    """Pick the character stat a task trains. Never raises; falls back to strength."""
    task_lower = _lower(task)
    for keywords, categories, stat in STAT_RULES:
        if category in categories or any(k in task_lower for k in keywords):
            return stat
    return CATEGORY_DEFAULT_STAT.get(category, "strength")


def clamp(value, low, high):
    return max(low, min(high, value))


def xp_reward(difficulty, user_level=1):
    base = BASE_XP.get(difficulty, DEFAULT_BASE_XP)
    level_bonus = (max(1, int(user_level or 1)) // 3) * 10
    return clamp(base + level_bonus, MIN_XP_REWARD, MAX_XP_REWARD)


def generate_quick_quest(task, user_level=1):
    task_lower = _lower(task)
    for keywords, category, difficulty, title, description in QUEST_TEMPLATES:
        if any(k in task_lower for k in keywords):
            break
    else:
        category, difficulty = "general", "medium"
        title, description = random.choice(GENERIC_TITLES), GENERIC_DESCRIPTION
    return QuestDraft(title=title, description=description, xp_reward=xp_reward(difficulty, user_level),
                      difficulty=difficulty, category=category, primary_stat=classify(task, category))


# --- Leveling ---
def level_for_xp(total_xp):
    if total_xp is None or total_xp <= 0: return 1
    return math.floor(total_xp / XP_PER_LEVEL) + 1


def level_progress(total_xp):
    total_xp = max(0, total_xp or 0)
    level = level_for_xp(total_xp)
    current_level_xp = (level - 1) * XP_PER_LEVEL
    progress_xp = total_xp - current_level_xp
    return {'level': level, 'total_xp': total_xp, 'current_level_xp': current_level_xp, 'progress_xp': progress_xp,
            'needed_xp': XP_PER_LEVEL, 'progress_percentage': min(100, 100 * progress_xp / XP_PER_LEVEL)}


def is_level_up(old_total_xp, new_total_xp):
    return level_for_xp(old_total_xp) != level_for_xp(new_total_xp)
