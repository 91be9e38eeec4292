"""Persistence of quest progression.

`ProgressionStore` is the seam the routes talk to; `SqlProgressionStore` keeps
the state in the Flask-SQLAlchemy models and makes quest completion a single
compare-and-swap transaction so concurrent completions have one winner.
"""
import abc
import logging
from dataclasses import dataclass, asdict

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from achievements import ProgressionSnapshot, consecutive_day_streak
from errors import QuestNotFoundOrCompleted
from models import Quest, User, UserAchievement, UserStat, utcnow
from quest_engine import STATS, is_level_up, level_for_xp

log = logging.getLogger(__name__)

BASE_STAT_VALUE = 1


@dataclass
class CompletionResult:
    xp_awarded: int
    new_total_xp: int
    old_level: int
    new_level: int
    level_up: bool
    stat_improved: str

    def to_dict(self):
        return asdict(self)


class ProgressionStore(abc.ABC):

    @abc.abstractmethod
    def complete_quest(self, quest_id):
        """Atomically complete an active quest and return a CompletionResult."""

    @abc.abstractmethod
    def upsert_stat(self, user_id, stat_name, delta):
        """Add delta to a stat, creating it from the base value if missing."""

    @abc.abstractmethod
    def create_quest(self, user_id, **fields):
        """Return (quest, created). An active quest with the same task is returned as-is."""

    @abc.abstractmethod
    def load_snapshot(self, user_id, today=None):
        pass

    @abc.abstractmethod
    def unlocked_achievements(self, user_id):
        """Map of achievement key -> unlocked_at."""

    @abc.abstractmethod
    def award_achievements(self, user_id, achievements):
        """Record unlocks and grant their rewards; returns those actually recorded."""


class SqlProgressionStore(ProgressionStore):

    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def initialize_user(self, user):
        for stat_name in STATS:
            self.session.add(UserStat(user_id=user.id, stat_name=stat_name, value=BASE_STAT_VALUE))
        self.session.commit()

    def complete_quest(self, quest_id):
        session = self.session
        try:
            claimed = session.execute(
                update(Quest).where(Quest.id == quest_id, Quest.status == 'active')
                .values(status='completed', completed_at=utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                session.rollback()
                raise QuestNotFoundOrCompleted()
            user_id, xp, primary_stat = session.execute(
                select(Quest.user_id, Quest.xp_reward, Quest.primary_stat).where(Quest.id == quest_id)).one()
            old_total, new_total = self._add_xp(user_id, xp)
            self._increment_stat(user_id, primary_stat, 1)
            session.commit()
        except QuestNotFoundOrCompleted:
            raise
        except Exception:
            session.rollback()
            raise
        result = CompletionResult(xp_awarded=xp, new_total_xp=new_total, old_level=level_for_xp(old_total),
                                  new_level=level_for_xp(new_total), level_up=is_level_up(old_total, new_total),
                                  stat_improved=primary_stat)
        log.info("Quest %s completed by user %s: +%d XP (level %d -> %d)", quest_id, user_id, xp, result.old_level, result.new_level)
        return result

    def _add_xp(self, user_id, xp):
        session = self.session
        session.execute(update(User).where(User.id == user_id).values(total_xp=User.total_xp + xp)
                        .execution_options(synchronize_session=False))
        new_total = session.execute(select(User.total_xp).where(User.id == user_id)).scalar_one()
        session.execute(update(User).where(User.id == user_id).values(level=level_for_xp(new_total))
                        .execution_options(synchronize_session=False))
        return new_total - xp, new_total

    def _increment_stat(self, user_id, stat_name, delta):
        session = self.session
        updated = session.execute(
            update(UserStat).where(UserStat.user_id == user_id, UserStat.stat_name == stat_name)
            .values(value=UserStat.value + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if not updated:
            # A concurrent insert of the same row fails the whole transaction on the unique constraint.
            session.add(UserStat(user_id=user_id, stat_name=stat_name, value=BASE_STAT_VALUE + delta))
            session.flush()

    def upsert_stat(self, user_id, stat_name, delta):
        try:
            self._increment_stat(user_id, stat_name, delta)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def create_quest(self, user_id, **fields):
        existing = Quest.query.filter_by(user_id=user_id, original_task=fields['original_task'], status='active').first()
        if existing: return existing, False
        quest = Quest(user_id=user_id, status='active', **fields)
        self.session.add(quest)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = Quest.query.filter_by(user_id=user_id, original_task=fields['original_task'], status='active').first()
            if existing is None:
                raise
            return existing, False
        return quest, True

    def load_snapshot(self, user_id, today=None):
        user = self.session.get(User, user_id)
        stats = {s: BASE_STAT_VALUE for s in STATS}
        stats.update({s.stat_name: s.value for s in UserStat.query.filter_by(user_id=user_id).all()})
        completed = Quest.query.filter_by(user_id=user_id, status='completed')
        completion_days = [row[0].date() for row in self.session.query(Quest.completed_at)
                           .filter(Quest.user_id == user_id, Quest.status == 'completed', Quest.completed_at.isnot(None)).all()]
        return ProgressionSnapshot(
            total_xp=user.total_xp, level=level_for_xp(user.total_xp), stats=stats,
            quests_completed=completed.count(),
            streak_days=consecutive_day_streak(completion_days, today),
            epic_quests_completed=completed.filter_by(difficulty='epic').count(),
            categories_completed=self.session.query(func.count(func.distinct(Quest.category)))
            .filter(Quest.user_id == user_id, Quest.status == 'completed').scalar() or 0)

    def unlocked_achievements(self, user_id):
        return {ua.achievement_key: ua.unlocked_at for ua in UserAchievement.query.filter_by(user_id=user_id).all()}

    def award_achievements(self, user_id, achievements):
        session = self.session
        recorded = set(self.unlocked_achievements(user_id))
        awarded = [a for a in achievements if a.key not in recorded]
        if not awarded:
            return []
        try:
            for achievement in awarded:
                session.add(UserAchievement(user_id=user_id, achievement_key=achievement.key))
                session.flush()
                if achievement.xp_reward:
                    self._add_xp(user_id, achievement.xp_reward)
                if achievement.stat_bonus:
                    self._increment_stat(user_id, achievement.stat_bonus.type, achievement.stat_bonus.amount)
            session.commit()
        except IntegrityError:
            # A concurrent check recorded (and rewarded) these first.
            session.rollback()
            log.info("Achievements for user %s were already being awarded elsewhere", user_id)
            return []
        except Exception:
            session.rollback()
            raise
        if awarded:
            log.info("User %s unlocked %s", user_id, ", ".join(a.key for a in awarded))
        return awarded
