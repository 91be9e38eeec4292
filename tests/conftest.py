"""Pytest fixtures."""

import pytest

from app import create_app
from models import db


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'OPENAI_API_KEY': None,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username='hero', password='s3cret'):
    response = client.post('/register', json={'username': username, 'email': f'{username}@example.com', 'password': password})
    assert response.status_code == 201
    return response.get_json()['user_id']


@pytest.fixture
def user_client(client):
    """Test client logged in as a freshly registered user."""
    client.user_id = register(client)
    return client


@pytest.fixture
def store(app):
    return app.extensions['progression_store']
