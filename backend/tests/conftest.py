"""
Pytest fixtures for AromaLab backend tests.

Provides test database setup, users, acting-user contexts, and test client.
"""

import pytest
from aromalab import create_app
from aromalab.extensions import db
from aromalab.services.auth_service import create_user
from aromalab.services.session_service import SessionContext
from aromalab.services import material_service, formula_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Administrator account."""
    return create_user(
        email="admin@aromalab.com",
        password="admin123",
        name="Administrateur",
        role="admin",
    )


@pytest.fixture(scope='function')
def regular_user(db_session):
    """Standard (non-admin) account."""
    return create_user(
        email="lab@aromalab.com",
        password="lab12345",
        name="Laborantin",
        role="user",
    )


@pytest.fixture(scope='function')
def admin_actor(admin_user):
    return SessionContext.for_user(admin_user)


@pytest.fixture(scope='function')
def user_actor(regular_user):
    return SessionContext.for_user(regular_user)


@pytest.fixture(scope='function')
def materials(db_session):
    """Three materials: MP1 (250 kg), MP2 (180 kg), MP3 (320 kg)."""
    return [
        material_service.add_material({"designation": "Vanilline", "cas": "121-33-5",
                                       "supplier": "Givaudan", "stock": 250.0, "price": 45.5}),
        material_service.add_material({"designation": "Éthyl Maltol", "cas": "4940-11-8",
                                       "supplier": "Symrise", "stock": 180.0, "price": 62.0}),
        material_service.add_material({"designation": "Menthol", "cas": "2216-51-5",
                                       "supplier": "Firmenich", "stock": 320.0, "price": 38.75}),
    ]


@pytest.fixture(scope='function')
def valid_formula(materials):
    """F1: 60 kg MP1 + 40 kg MP2 (valid, 100 kg)."""
    return formula_service.add_formula({
        "name": "Vanille douce",
        "description": "Base vanille",
        "ingredients": [
            {"material_id": materials[0].id, "quantity": 60.0},
            {"material_id": materials[1].id, "quantity": 40.0},
        ],
    })


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin@aromalab.com", "admin123"))


@pytest.fixture(scope='function')
def user_headers(client, regular_user):
    return auth_headers(get_auth_token(client, "lab@aromalab.com", "lab12345"))
