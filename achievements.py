"""Achievement catalog and the rules that decide when an achievement unlocks.

The catalog is plain data: every achievement unlocks when one snapshot metric
reaches a threshold. Evaluation never writes anything; recording unlocks is the
progression store's job.
"""
import datetime
from dataclasses import dataclass, field
from typing import Optional

from quest_engine import STATS

CATALOG_VERSION = 1
TIERS = ("bronze", "silver", "gold", "platinum", "legendary")


@dataclass(frozen=True)
class StatBonus:
    type: str
    amount: int


@dataclass(frozen=True)
class Achievement:
    key: str
    title: str
    description: str
    icon: str
    category: str
    tier: str
    metric: str
    threshold: int
    xp_reward: int
    stat_bonus: Optional[StatBonus] = None
    is_hidden: bool = False
    display_order: int = 0

    def to_dict(self, include_rule=True):
        data = {'key': self.key, 'title': self.title, 'description': self.description, 'icon': self.icon,
                'category': self.category, 'tier': self.tier, 'xp_reward': self.xp_reward,
                'stat_bonus_type': self.stat_bonus.type if self.stat_bonus else None,
                'stat_bonus_amount': self.stat_bonus.amount if self.stat_bonus else None,
                'is_hidden': self.is_hidden, 'display_order': self.display_order}
        if include_rule:
            data.update(metric=self.metric, threshold=self.threshold)
        return data


@dataclass
class ProgressionSnapshot:
    total_xp: int = 0
    level: int = 1
    stats: dict = field(default_factory=lambda: {s: 1 for s in STATS})
    quests_completed: int = 0
    streak_days: int = 0
    epic_quests_completed: int = 0
    categories_completed: int = 0

    def metric(self, name):
        if name.startswith("stat:"):
            return self.stats.get(name[5:], 1)
        return getattr(self, name)


CATALOG = (
    Achievement("first_quest", "First Steps", "Complete your first quest", "🗡️", "progression", "bronze", "quests_completed", 1, 10, display_order=1),
    Achievement("quest_apprentice", "Quest Apprentice", "Complete 10 quests", "📜", "progression", "silver", "quests_completed", 10, 50, display_order=2),
    Achievement("quest_veteran", "Seasoned Adventurer", "Complete 50 quests", "🛡️", "progression", "gold", "quests_completed", 50, 150, display_order=3),
    Achievement("quest_legend", "Living Legend", "Complete 100 quests", "🏰", "progression", "platinum", "quests_completed", 100, 300, display_order=4),
    Achievement("level_5", "Rising Hero", "Reach level 5", "⭐", "progression", "silver", "level", 5, 100, display_order=5),
    Achievement("level_10", "Champion of the Realm", "Reach level 10", "🌟", "progression", "gold", "level", 10, 250, display_order=6),
    Achievement("level_25", "Mythic Ascension", "Reach level 25", "👑", "progression", "legendary", "level", 25, 500, display_order=7),
    Achievement("streak_3", "Kindling", "Complete quests 3 days in a row", "🔥", "consistency", "bronze", "streak_days", 3, 25, display_order=8),
    Achievement("streak_7", "Week of Valor", "Complete quests 7 days in a row", "📅", "consistency", "silver", "streak_days", 7, 75, display_order=9),
    Achievement("streak_30", "Unbroken Oath", "Complete quests 30 days in a row", "⛓️", "consistency", "platinum", "streak_days", 30, 300, display_order=10),
    Achievement("strength_25", "Titan's Grip", "Raise strength to 25", "💪", "mastery", "gold", "stat:strength", 25, 150, StatBonus("strength", 2), display_order=11),
    Achievement("wisdom_25", "Sage of the Tower", "Raise wisdom to 25", "🧠", "mastery", "gold", "stat:wisdom", 25, 150, StatBonus("wisdom", 2), display_order=12),
    Achievement("endurance_25", "Tireless Wanderer", "Raise endurance to 25", "❤️", "mastery", "gold", "stat:endurance", 25, 150, StatBonus("endurance", 2), display_order=13),
    Achievement("charisma_25", "Voice of the Court", "Raise charisma to 25", "✨", "mastery", "gold", "stat:charisma", 25, 150, StatBonus("charisma", 2), display_order=14),
    Achievement("epic_slayer", "Dragon Slayer", "Complete an epic quest", "🐉", "special", "gold", "epic_quests_completed", 1, 100, is_hidden=True, display_order=15),
    Achievement("jack_of_all_trades", "Jack of All Trades", "Complete quests in 5 different categories", "🎭", "special", "silver", "categories_completed", 5, 75, is_hidden=True, display_order=16),
)
CATALOG_BY_KEY = {a.key: a for a in CATALOG}


def is_satisfied(achievement, snapshot):
    return snapshot.metric(achievement.metric) >= achievement.threshold


def achievement_progress(achievement, snapshot):
    current = snapshot.metric(achievement.metric)
    required = achievement.threshold
    return {'current': current, 'required': required, 'percentage': min(100, round(100 * current / required)) if required > 0 else 100}


def evaluate(snapshot, already_unlocked_keys, catalog=CATALOG):
    """Return catalog entries that are satisfied now but not yet unlocked."""
    unlocked = set(already_unlocked_keys)
    return sorted((a for a in catalog if a.key not in unlocked and is_satisfied(a, snapshot)), key=lambda a: a.display_order)


def summarize(snapshot, unlocked, catalog=CATALOG, recent_limit=5):
    """Gallery view. `unlocked` maps achievement key -> unlocked_at datetime.

    Locked hidden achievements are only counted, never described.
    """
    unlocked_list, available, hidden_locked = [], [], 0
    for a in sorted(catalog, key=lambda a: a.display_order):
        if a.key in unlocked:
            unlocked_list.append(dict(a.to_dict(include_rule=False), unlocked_at=unlocked[a.key].isoformat()))
        elif a.is_hidden:
            hidden_locked += 1
        else:
            available.append(dict(a.to_dict(include_rule=False), progress={a.metric: achievement_progress(a, snapshot)}))
    recent = sorted(unlocked_list, key=lambda a: a['unlocked_at'], reverse=True)[:recent_limit]
    return {'catalog_version': CATALOG_VERSION, 'total_achievements': len(catalog), 'unlocked_achievements': len(unlocked_list),
            'unlocked_list': unlocked_list, 'available_achievements': available, 'hidden_locked': hidden_locked,
            'recent_achievements': [{'title': a['title'], 'icon': a['icon'], 'tier': a['tier'], 'unlocked_at': a['unlocked_at']} for a in recent]}


def consecutive_day_streak(days, today=None):
    """Length of the run of completion days (UTC) ending today, or yesterday if today is still empty."""
    days = set(days)
    today = today or datetime.datetime.now(datetime.timezone.utc).date()
    cursor = today if today in days else today - datetime.timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= datetime.timedelta(days=1)
    return streak
