import logging
import os

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from flask_login import LoginManager, current_user, login_required, login_user, logout_user
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from achievements import evaluate, summarize
from ai_quest_generator import DEFAULT_CHARACTER_CLASS, DEFAULT_MODEL, AIQuestGenerator, generate_epic_quest
from errors import Forbidden, QuestError, QuestNotFoundOrCompleted, ValidationError
from models import CHARACTER_CLASS_LENGTH, TITLE_LENGTH, USERNAME_LENGTH, Quest, QuestReflection, User, db
from progression import SqlProgressionStore
from quest_engine import (CATEGORIES, DIFFICULTIES, MAX_TASK_LENGTH, MAX_XP_REWARD, MIN_XP_REWARD, QUEST_STATUSES, STATS,
                          classify, generate_quick_quest, level_progress, xp_reward)

login_manager = LoginManager()
bp = Blueprint('quests', __name__)


# --- Configuration ---
def create_app(test_config=None):
    app = Flask(__name__)
    CORS(app)

    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///chore_quests.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['OPENAI_API_KEY'] = os.environ.get('OPENAI_API_KEY')
    app.config['OPENAI_MODEL'] = os.environ.get('OPENAI_MODEL', DEFAULT_MODEL)
    app.config['AI_TIMEOUT_SECONDS'] = float(os.environ.get('AI_TIMEOUT_SECONDS', 10))
    if test_config:
        app.config.update(test_config)

    # Handle Railway PostgreSQL URL format
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith("postgres://"):
        app.config['SQLALCHEMY_DATABASE_URI'] = app.config['SQLALCHEMY_DATABASE_URI'].replace("postgres://", "postgresql://", 1)

    db.init_app(app)
    login_manager.init_app(app)
    app.extensions['progression_store'] = SqlProgressionStore(db)
    app.extensions['quest_generator'] = None
    if app.config['OPENAI_API_KEY']:
        app.extensions['quest_generator'] = AIQuestGenerator.from_api_key(
            app.config['OPENAI_API_KEY'], model=app.config['OPENAI_MODEL'], timeout=app.config['AI_TIMEOUT_SECONDS'])
    else:
        app.logger.info("OPENAI_API_KEY not set; quests will be generated from templates")

    app.register_blueprint(bp)
    app.register_error_handler(QuestError, handle_quest_error)
    app.register_error_handler(Exception, handle_unexpected_error)

    with app.app_context():
        db.create_all()
    return app


def store():
    return current_app.extensions['progression_store']


def handle_quest_error(e):
    return jsonify({'success': False, 'error': e.message}), e.status_code


def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({'success': False, 'error': e.description}), e.code
    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'success': False, 'error': 'Authentication required'}), 401


def json_body():
    data = request.get_json(silent=True)
    if data is None: return {}
    if not isinstance(data, dict): raise ValidationError('Request body must be a JSON object')
    return data


def pick(data, *names, default=None):
    for name in names:
        if data.get(name) is not None: return data[name]
    return default


def require_text(value, field='Task', max_length=MAX_TASK_LENGTH):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{field} is required and must be a non-empty string')
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f'{field} must be at most {max_length} characters')
    return value


def require_int(value, field, low=None, high=None):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer')
    if low is not None and high is not None and not low <= value <= high:
        raise ValidationError(f'{field} must be between {low} and {high}')
    if low is not None and value < low:
        raise ValidationError(f'{field} must be at least {low}')
    if high is not None and value > high:
        raise ValidationError(f'{field} must be at most {high}')
    return value


def optional_description(value):
    if value is None: return ''
    if not isinstance(value, str): raise ValidationError('description must be a string')
    return value.strip()


def require_choice(value, field, choices):
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def check_owner(user_id):
    if user_id is not None and str(user_id) != str(current_user.id):
        raise Forbidden()


# --- Auth Routes ---
@bp.route('/register', methods=['POST'])
def register():
    data = json_body()
    username, email, password = data.get('username'), data.get('email'), data.get('password')
    if not all([username, email, password]):
        return jsonify({'success': False, 'error': 'All fields are required'}), 400
    username = require_text(username, 'Username', USERNAME_LENGTH)
    character_class = require_text(data.get('character_class') or DEFAULT_CHARACTER_CLASS, 'characterClass', CHARACTER_CLASS_LENGTH)
    if User.query.filter((User.username == username) | (User.email == email)).first():
        return jsonify({'success': False, 'error': 'Username or email already exists'}), 400
    user = User(username=username, email=email, password_hash=generate_password_hash(password),
                character_class=character_class)
    db.session.add(user)
    db.session.commit()
    store().initialize_user(user)
    login_user(user)
    return jsonify({'success': True, 'user_id': user.id}), 201


@bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    username, password = data.get('username'), data.get('password')
    user = User.query.filter((User.username == username) | (User.email == username)).first()
    if user and password and check_password_hash(user.password_hash, password):
        login_user(user)
        return jsonify({'success': True, 'user_id': user.id})
    return jsonify({'success': False, 'error': 'Invalid credentials'}), 401


@bp.route('/logout')
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


# --- Quest Generation ---
@bp.route('/api/quests/generate', methods=['POST'])
@login_required
def api_generate_quest():
    data = json_body()
    check_owner(data.get('userId'))
    task = require_text(data.get('task'))
    user_level = require_int(pick(data, 'userLevel', 'user_level', default=1), 'userLevel', low=1)
    character_class = require_text(pick(data, 'characterClass', 'character_class', default=current_user.character_class or DEFAULT_CHARACTER_CLASS),
                                   'characterClass', CHARACTER_CLASS_LENGTH)
    if pick(data, 'useAI', 'use_ai', default=True):
        quest = generate_epic_quest(task, user_level, character_class, generator=current_app.extensions['quest_generator'])
    else:
        quest = generate_quick_quest(task, user_level)
    return jsonify({'success': True, 'quest': quest.to_dict()})


# --- Quest Management ---
@bp.route('/api/quests', methods=['GET'])
@login_required
def api_get_quests():
    status = request.args.get('status')
    limit = min(max(request.args.get('limit', 50, type=int), 1), 100)
    offset = max(request.args.get('offset', 0, type=int), 0)
    query = Quest.query.filter_by(user_id=current_user.id)
    if status in QUEST_STATUSES: query = query.filter_by(status=status)
    quests = query.order_by(Quest.created_at.desc(), Quest.id.desc()).offset(offset).limit(limit).all()
    return jsonify({'success': True, 'quests': [q.to_dict() for q in quests], 'count': len(quests)})


@bp.route('/api/quests', methods=['POST'])
@login_required
def api_add_quest():
    data = json_body()
    check_owner(data.get('userId'))
    title = require_text(data.get('title'), 'Title', TITLE_LENGTH)
    description = optional_description(data.get('description'))
    original_task = require_text(pick(data, 'originalTask', 'original_task'), 'Original task')
    difficulty = require_choice(data.get('difficulty') or 'medium', 'difficulty', DIFFICULTIES)
    category = require_choice(data.get('category') or 'general', 'category', CATEGORIES)
    primary_stat = pick(data, 'primaryStat', 'primary_stat')
    primary_stat = require_choice(primary_stat, 'primaryStat', STATS) if primary_stat else classify(original_task, category)
    reward = pick(data, 'xpReward', 'xp_reward')
    reward = xp_reward(difficulty, current_user.level) if reward is None else require_int(reward, 'xpReward', MIN_XP_REWARD, MAX_XP_REWARD)

    quest, created = store().create_quest(current_user.id, title=title, description=description,
                                          original_task=original_task, xp_reward=reward, difficulty=difficulty,
                                          category=category, primary_stat=primary_stat)
    return jsonify({'success': True, 'quest': quest.to_dict(), 'was_existing': not created}), 201 if created else 200


@bp.route('/api/quests/<int:quest_id>', methods=['PATCH'])
@login_required
def api_update_quest(quest_id):
    data = json_body()
    quest = db.session.get(Quest, quest_id)
    if quest is None: return jsonify({'success': False, 'error': 'Quest not found'}), 404
    if quest.user_id != current_user.id: raise Forbidden()
    # XP and status only move through completion
    if any(name in data for name in ('status', 'xpReward', 'xp_reward')):
        raise ValidationError('status and xp_reward cannot be edited')

    changes = {}
    if 'title' in data: changes['title'] = require_text(data['title'], 'Title', TITLE_LENGTH)
    if 'description' in data: changes['description'] = optional_description(data['description'])
    if 'difficulty' in data: changes['difficulty'] = require_choice(data['difficulty'], 'difficulty', DIFFICULTIES)
    if 'category' in data: changes['category'] = require_choice(data['category'], 'category', CATEGORIES)
    primary_stat = pick(data, 'primaryStat', 'primary_stat')
    if primary_stat is not None: changes['primary_stat'] = require_choice(primary_stat, 'primaryStat', STATS)

    for name, value in changes.items():
        setattr(quest, name, value)
    db.session.commit()
    return jsonify({'success': True, 'quest': quest.to_dict()})


@bp.route('/api/quests/<int:quest_id>', methods=['DELETE'])
@login_required
def api_delete_quest(quest_id):
    quest = db.session.get(Quest, quest_id)
    if quest is None: return jsonify({'success': False, 'error': 'Quest not found'}), 404
    if quest.user_id != current_user.id: raise Forbidden()
    db.session.delete(quest)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Quest deleted successfully'})


@bp.route('/api/quests/<int:quest_id>/complete', methods=['POST'])
@login_required
def api_complete_quest(quest_id):
    reflection = json_body().get('reflection')
    quest = db.session.get(Quest, quest_id)
    if quest is None: raise QuestNotFoundOrCompleted()
    if quest.user_id != current_user.id: raise Forbidden()
    result = store().complete_quest(quest_id)

    if isinstance(reflection, str) and reflection.strip():
        try:
            db.session.add(QuestReflection(quest_id=quest_id, user_id=current_user.id, reflection=reflection.strip()))
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.warning("Failed to store reflection for quest %s", quest_id, exc_info=True)

    quest = db.session.get(Quest, quest_id)
    return jsonify({'success': True, 'result': result.to_dict(), 'quest_id': quest_id,
                    'completed_at': quest.completed_at.isoformat() if quest.completed_at else None})


@bp.route('/api/quests/<int:quest_id>/complete', methods=['GET'])
@login_required
def api_quest_completion_status(quest_id):
    quest = Quest.query.filter_by(id=quest_id, user_id=current_user.id).first()
    if quest is None: return jsonify({'success': False, 'error': 'Quest not found'}), 404
    return jsonify({'success': True, 'quest': {'id': quest.id, 'status': quest.status, 'xp_reward': quest.xp_reward,
                                               'completed_at': quest.completed_at.isoformat() if quest.completed_at else None,
                                               'is_completed': quest.status == 'completed'}})


# --- Progression ---
@bp.route('/api/profile')
@login_required
def api_get_profile():
    snapshot = store().load_snapshot(current_user.id)
    return jsonify(dict(level_progress(snapshot.total_xp), username=current_user.username,
                        character_class=current_user.character_class, stats=snapshot.stats,
                        quests_completed=snapshot.quests_completed, streak_days=snapshot.streak_days))


@bp.route('/api/profile', methods=['PATCH'])
@login_required
def api_update_profile():
    data = json_body()
    changes = {}
    if 'username' in data:
        changes['username'] = require_text(data['username'], 'Username', USERNAME_LENGTH)
        if User.query.filter(User.username == changes['username'], User.id != current_user.id).first():
            raise ValidationError('Username already exists')
    if 'characterClass' in data or 'character_class' in data:
        changes['character_class'] = require_text(pick(data, 'characterClass', 'character_class'), 'characterClass',
                                                  CHARACTER_CLASS_LENGTH)

    for name, value in changes.items():
        setattr(current_user, name, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError('Username already exists')
    return api_get_profile()


@bp.route('/api/achievements', methods=['GET'])
@login_required
def api_get_achievements():
    snapshot = store().load_snapshot(current_user.id)
    return jsonify(summarize(snapshot, store().unlocked_achievements(current_user.id)))


@bp.route('/api/achievements/check', methods=['POST'])
@login_required
def api_check_achievements():
    awarded = []
    # Rewards can satisfy further achievements (e.g. XP pushing a level threshold), so repeat until nothing new unlocks.
    while True:
        snapshot = store().load_snapshot(current_user.id)
        newly = store().award_achievements(current_user.id, evaluate(snapshot, store().unlocked_achievements(current_user.id)))
        if not newly: break
        awarded.extend(newly)
    return jsonify({'achievements_awarded': len(awarded), 'new_achievements': [a.to_dict() for a in awarded]})


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    create_app().run(debug=False, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
