import time
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from mulaboard import create_app, db
from mulaboard.errors import StoreUnavailable
from mulaboard.models import User, ReviewPeriod
from mulaboard.utils.error_handler import ErrorHandler

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SQLALCHEMY_ENGINE_OPTIONS': {},
    'REDIS_URL': '',
    'RATELIMIT_ENABLED': False,
    'RATELIMIT_STORAGE_URI': 'memory://',
    'LOG_DIR': None,
    'JWT_SECRET_KEY': 'test-jwt-secret-key-with-enough-length',
    'SECRET_KEY': 'test-secret-key',
}

GOOD_RATINGS = {
    'work_quality': 5,
    'communication': 5,
    'team_behavior': 4,
    'accountability': 5,
    'overall': 5,
}


class FakeCounterStore:
    """
    内存计数器，unavailable=True 时模拟 Redis 宕机。

    increment 与 RedisCounterStore 一样按事务处理：expire_fails=True 时计数和过期时间都不写入。
    """

    def __init__(self):
        self.counts = {}
        self.expiries = {}
        self.unavailable = False
        self.expire_fails = False

    def _check(self):
        if self.unavailable:
            raise StoreUnavailable('counter store is down')

    def get(self, key):
        self._check()
        return self.counts.get(key)

    def increment(self, key, window_seconds):
        self._check()
        if self.expire_fails:
            raise StoreUnavailable('EXPIRE failed, transaction discarded')
        self.counts[key] = self.counts.get(key, 0) + 1
        self.expiries.setdefault(key, window_seconds)
        return self.counts[key]


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    ErrorHandler.reset_stats()
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def counter_store(app):
    store = FakeCounterStore()
    app.extensions['counter_store'] = store
    return store


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email, full_name='Jane Doe', role='employee', account_status='approved', **kwargs):
    user = User(
        email=email,
        full_name=full_name,
        designation=kwargs.pop('designation', 'Engineer'),
        department=kwargs.pop('department', 'Platform'),
        role=role,
        account_status=account_status,
        public_slug=kwargs.pop('public_slug', email.split('@')[0].replace('.', '-')),
        **kwargs
    )
    user.set_password('password123')
    db.session.add(user)
    db.session.commit()
    return user


def make_period(slug='annual-2025', is_active=True, **kwargs):
    now = datetime.utcnow()
    period = ReviewPeriod(
        name=kwargs.pop('name', 'Annual Review 2025'),
        slug=slug,
        start_date=kwargs.pop('start_date', now - timedelta(days=1)),
        end_date=kwargs.pop('end_date', now + timedelta(days=30)),
        is_active=is_active,
        **kwargs
    )
    db.session.add(period)
    db.session.commit()
    return period


@pytest.fixture
def employee(app):
    return make_user('jane.doe@example.com')


@pytest.fixture
def admin(app):
    return make_user('admin@example.com', full_name='Admin User', role='admin', public_slug='admin')


@pytest.fixture
def period(app):
    return make_period()


def auth_headers(user):
    token = create_access_token(
        identity=str(user.id),
        additional_claims={'email': user.email, 'role': user.role, 'is_admin': user.is_admin},
    )
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def employee_headers(employee):
    return auth_headers(employee)


def submission_payload(target_user, period, fingerprint='fp-abc', **overrides):
    payload = {
        'targetUserId': str(target_user.id),
        'reviewPeriodId': str(period.id),
        'fingerprint': fingerprint,
        'ratings': dict(GOOD_RATINGS),
        'strengths': 'Always ships on time and reviews code carefully.',
        'improvements': 'Could share more context in design discussions.',
        'honeypot': '',
        'formLoadTime': (time.time() - 120) * 1000,
    }
    payload.update(overrides)
    return payload
