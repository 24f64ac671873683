"""
Route tests for /api/auth and the seed script.
"""

from mulaboard import db
from mulaboard.models import Quote, User
from scripts.seed import DEFAULT_QUOTES, seed_admin, seed_quotes
from conftest import make_user

REGISTRATION = {
    'email': 'Jane.Doe@Example.com',
    'password': 'password123',
    'fullName': 'Jane Doe',
    'designation': 'Engineer',
    'department': 'Platform',
}


def test_register_creates_pending_user(client, app):
    response = client.post('/api/auth/register', json=REGISTRATION)
    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['account_status'] == 'pending'
    assert data['public_slug'] == 'jane-doe'

    user = User.query.filter_by(email='jane.doe@example.com').one()
    assert user.check_password('password123')
    assert user.role == 'employee'


def test_register_generates_unique_slug(client, app):
    make_user('someone.else@example.com', full_name='Jane Doe', public_slug='jane-doe')
    response = client.post('/api/auth/register', json=REGISTRATION)
    assert response.get_json()['data']['public_slug'] == 'jane-doe-1'


def test_register_duplicate_email(client, app):
    assert client.post('/api/auth/register', json=REGISTRATION).status_code == 201
    response = client.post('/api/auth/register', json=REGISTRATION)
    assert response.status_code == 409


def test_register_validation(client, app):
    response = client.post('/api/auth/register', json={'email': 'bad'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'validation_error'


def test_login_pending_account_refused(client, app):
    client.post('/api/auth/register', json=REGISTRATION)
    response = client.post('/api/auth/login', json={'email': 'jane.doe@example.com', 'password': 'password123'})
    assert response.status_code == 403
    assert response.get_json()['error'] == 'account_pending'


def test_login_and_verify_token(client, employee):
    response = client.post('/api/auth/login', json={'email': employee.email, 'password': 'password123'})
    assert response.status_code == 200
    token = response.get_json()['data']['token']

    response = client.post('/api/auth/verify-token', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 200
    assert response.get_json()['data']['user']['id'] == employee.id


def test_login_wrong_password(client, employee):
    response = client.post('/api/auth/login', json={'email': employee.email, 'password': 'wrong-password'})
    assert response.status_code == 401


def test_verify_invalid_token(client, app):
    response = client.post('/api/auth/verify-token', headers={'Authorization': 'Bearer not-a-token'})
    assert response.status_code == 422
    assert response.get_json()['error'] == 'invalid_token'


def test_health(client, app):
    assert client.get('/api/health').get_json()['status'] == 'healthy'


def test_seed_admin_is_idempotent(app):
    admin = seed_admin('Root@Example.com', 'Admin@123456')
    assert admin.role == 'admin'
    assert admin.account_status == 'approved'
    assert admin.public_slug == 'admin'
    assert admin.check_password('Admin@123456')

    again = seed_admin('root@example.com', 'other-password')
    assert again.id == admin.id
    assert User.query.count() == 1


def test_seed_quotes_skips_existing(app):
    admin = seed_admin('root@example.com', 'Admin@123456')
    assert seed_quotes(created_by=admin) == len(DEFAULT_QUOTES)
    assert seed_quotes(created_by=admin) == 0
    assert Quote.query.count() == len(DEFAULT_QUOTES)
    assert db.session.query(Quote.created_by_id).distinct().all() == [(admin.id,)]
