"""
Route tests for /api/periods.
"""

from mulaboard import db
from mulaboard.models import ReviewPeriod
from conftest import make_period

NEW_PERIOD = {
    'name': 'Q3 Review',
    'slug': 'q3-2025',
    'startDate': '2025-07-01T00:00:00Z',
    'endDate': '2025-09-30T00:00:00Z',
    'theme': {'name': 'Carrot Harvest', 'primaryEmoji': '🥕', 'backgroundColor': '#fff7ed'},
}


def test_list_periods(client, period):
    make_period(slug='old-2024', is_active=False)

    response = client.get('/api/periods')
    assert response.status_code == 200
    assert len(response.get_json()['data']) == 2

    response = client.get('/api/periods?active=true')
    data = response.get_json()['data']
    assert [item['slug'] for item in data] == [period.slug]
    assert data[0]['theme']['primary_emoji'] == '🌿'


def test_create_period(client, admin_headers):
    response = client.post('/api/periods', json=NEW_PERIOD, headers=admin_headers)
    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['slug'] == 'q3-2025'
    assert data['is_active'] is False
    assert data['theme']['name'] == 'Carrot Harvest'
    assert data['duration_days'] == 91


def test_create_active_period_deactivates_others(client, admin_headers, period):
    response = client.post('/api/periods', json=dict(NEW_PERIOD, isActive=True), headers=admin_headers)
    assert response.status_code == 201

    db.session.expire_all()
    active = ReviewPeriod.query.filter_by(is_active=True).all()
    assert [item.slug for item in active] == ['q3-2025']


def test_create_period_duplicate_slug(client, admin_headers, period):
    response = client.post('/api/periods', json=dict(NEW_PERIOD, slug=period.slug), headers=admin_headers)
    assert response.status_code == 409


def test_create_period_validation(client, admin_headers):
    response = client.post('/api/periods', json=dict(NEW_PERIOD, endDate='2025-06-01T00:00:00Z'),
                           headers=admin_headers)
    assert response.status_code == 400
    assert 'endDate' in response.get_json()['details']


def test_create_period_requires_admin(client, employee_headers):
    assert client.post('/api/periods', json=NEW_PERIOD, headers=employee_headers).status_code == 403


def test_update_period(client, admin_headers, period):
    response = client.patch(f'/api/periods/{period.id}', json={'name': 'Renamed Review'}, headers=admin_headers)
    assert response.status_code == 200
    assert response.get_json()['data']['name'] == 'Renamed Review'


def test_update_period_end_before_existing_start(client, admin_headers, period):
    response = client.patch(f'/api/periods/{period.id}', json={'endDate': '2000-01-01T00:00:00'},
                            headers=admin_headers)
    assert response.status_code == 400


def test_activate_existing_period(client, admin_headers, period):
    other = make_period(slug='q4-2025', is_active=False)
    response = client.patch(f'/api/periods/{other.id}', json={'isActive': True}, headers=admin_headers)
    assert response.status_code == 200

    db.session.expire_all()
    assert ReviewPeriod.get_active().slug == 'q4-2025'
    assert db.session.get(ReviewPeriod, period.id).is_active is False


def test_update_period_slug_conflict(client, admin_headers, period):
    other = make_period(slug='q4-2025', is_active=False)
    response = client.patch(f'/api/periods/{other.id}', json={'slug': period.slug}, headers=admin_headers)
    assert response.status_code == 409


def test_delete_period(client, admin_headers, period):
    response = client.delete(f'/api/periods/{period.id}', headers=admin_headers)
    assert response.status_code == 200
    assert ReviewPeriod.query.count() == 0


def test_delete_missing_period(client, admin_headers):
    response = client.delete('/api/periods/12345', headers=admin_headers)
    assert response.status_code == 404
    assert response.get_json()['message'] == 'Review period not found'
