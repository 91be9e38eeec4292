import datetime

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text

db = SQLAlchemy()

USERNAME_LENGTH = 80
CHARACTER_CLASS_LENGTH = 50
TITLE_LENGTH = 200


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


# --- Database Models ---
class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(USERNAME_LENGTH), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    character_class = db.Column(db.String(CHARACTER_CLASS_LENGTH), nullable=False, default='Life Adventurer')
    total_xp = db.Column(db.Integer, nullable=False, default=0)
    level = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=utcnow)

    quests = db.relationship('Quest', backref='owner', lazy=True, cascade='all, delete-orphan')
    stats = db.relationship('UserStat', backref='user', lazy=True, cascade='all, delete-orphan')
    achievements = db.relationship('UserAchievement', backref='user', lazy=True, cascade='all, delete-orphan')


class Quest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(TITLE_LENGTH), nullable=False)
    description = db.Column(db.Text)
    original_task = db.Column(db.String(500), nullable=False)
    xp_reward = db.Column(db.Integer, nullable=False, default=50)
    status = db.Column(db.String(20), nullable=False, default='active', index=True)
    difficulty = db.Column(db.String(20), nullable=False, default='medium')
    category = db.Column(db.String(30), nullable=False, default='general')
    primary_stat = db.Column(db.String(20), nullable=False, default='strength')
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    reflections = db.relationship('QuestReflection', backref='quest', lazy=True, cascade='all, delete-orphan')

    # One active quest per (owner, task); completed duplicates are allowed.
    __table_args__ = (
        db.Index('uq_quest_active_task', 'user_id', 'original_task', unique=True,
                 sqlite_where=text("status = 'active'"), postgresql_where=text("status = 'active'")),
    )

    def to_dict(self):
        return {'id': self.id, 'user_id': self.user_id, 'title': self.title, 'description': self.description,
                'original_task': self.original_task, 'xp_reward': self.xp_reward, 'status': self.status,
                'difficulty': self.difficulty, 'category': self.category, 'primary_stat': self.primary_stat,
                'completed_at': self.completed_at.isoformat() if self.completed_at else None,
                'created_at': self.created_at.isoformat() if self.created_at else None}


class UserStat(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    stat_name = db.Column(db.String(20), nullable=False)
    value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    __table_args__ = (db.UniqueConstraint('user_id', 'stat_name'),)


class UserAchievement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    achievement_key = db.Column(db.String(50), nullable=False)
    unlocked_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    __table_args__ = (db.UniqueConstraint('user_id', 'achievement_key'),)


class QuestReflection(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    quest_id = db.Column(db.Integer, db.ForeignKey('quest.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    reflection = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
