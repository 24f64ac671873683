"""
Route tests for /api/feedback using the Flask test client.
"""

import time

from mulaboard import db
from mulaboard.errors import StoreUnavailable
from mulaboard.models import Feedback, FeedbackAttempt
from mulaboard.services.eligibility import hash_ip
from conftest import GOOD_RATINGS, auth_headers, make_period, make_user, submission_payload


def submit(client, payload, ip='198.51.100.1'):
    return client.post('/api/feedback', json=payload, headers={'X-Forwarded-For': f'{ip}, 10.0.0.1'})


def create_feedback(target, period, fingerprint, status='approved', visibility='private', ratings=None):
    feedback = Feedback(
        target_user_id=target.id,
        review_period_id=period.id,
        submitter_fingerprint=fingerprint,
        submitter_ip=hash_ip(fingerprint),
        ratings=ratings or dict(GOOD_RATINGS),
        strengths='Great collaborator and mentor.',
        improvements='Could document decisions more.',
        moderation_status=status,
        visibility=visibility,
    )
    db.session.add(feedback)
    db.session.commit()
    return feedback


# --- POST /api/feedback ---

def test_submit_feedback_success(client, counter_store, employee, period):
    response = submit(client, submission_payload(employee, period))

    assert response.status_code == 201
    body = response.get_json()
    assert body['success'] is True
    assert body['data']['mula_rating'] == 'golden_mula'
    assert body['data']['average_score'] == 4.8

    feedback = db.session.get(Feedback, body['data']['id'])
    assert feedback.moderation_status == 'pending'
    assert feedback.visibility == 'private'
    assert feedback.submitter_ip == hash_ip('198.51.100.1')

    attempt = FeedbackAttempt.query.one()
    assert attempt.status == 'completed'
    assert len(counter_store.counts) == 2


def test_second_submission_is_rate_limited(client, counter_store, employee, period):
    assert submit(client, submission_payload(employee, period)).status_code == 201

    response = submit(client, submission_payload(employee, period))
    assert response.status_code == 403
    assert response.get_json()['error'] == 'fingerprint_rate_limit'

    blocked = FeedbackAttempt.query.filter_by(status='blocked').one()
    assert blocked.block_reason == 'fingerprint_rate_limit'


def test_duplicate_blocked_by_records_when_counters_are_down(client, counter_store, employee, period):
    counter_store.unavailable = True
    assert submit(client, submission_payload(employee, period)).status_code == 201

    response = submit(client, submission_payload(employee, period))
    assert response.status_code == 403
    assert response.get_json()['error'] == 'already_submitted'
    assert Feedback.query.count() == 1


def test_submission_without_redis_still_works(client, employee, period):
    # 未配置 REDIS_URL，计数器为 None
    response = submit(client, submission_payload(employee, period))
    assert response.status_code == 201


def test_two_people_behind_one_ip_can_both_submit(client, employee, period):
    # 未配置 REDIS_URL，只剩反馈表这一道检查
    alice = submit(client, submission_payload(employee, period, fingerprint='fp-alice'), ip='10.0.0.1')
    bob = submit(client, submission_payload(employee, period, fingerprint='fp-bob'), ip='10.0.0.1')

    assert alice.status_code == 201
    assert bob.status_code == 201
    assert Feedback.query.filter_by(submitter_ip=hash_ip('10.0.0.1')).count() == 2


def test_same_ip_blocked_once_record_limit_reached(client, app, employee, period):
    app.config['FEEDBACK_IP_LIMIT'] = 2
    for fingerprint in ('fp-alice', 'fp-bob'):
        response = submit(client, submission_payload(employee, period, fingerprint=fingerprint), ip='10.0.0.1')
        assert response.status_code == 201

    response = submit(client, submission_payload(employee, period, fingerprint='fp-carol'), ip='10.0.0.1')
    assert response.status_code == 403
    assert response.get_json()['error'] == 'already_submitted'


def test_honeypot_rejected(client, counter_store, employee, period):
    response = submit(client, submission_payload(employee, period, honeypot='http://spam.example.com'))
    assert response.status_code == 400
    assert response.get_json()['error'] == 'invalid_submission'
    assert Feedback.query.count() == 0


def test_form_submitted_too_quickly(client, counter_store, employee, period):
    response = submit(client, submission_payload(employee, period, formLoadTime=time.time() * 1000))
    assert response.status_code == 400
    assert response.get_json()['error'] == 'submitted_too_quickly'


def test_invalid_ratings_rejected(client, counter_store, employee, period):
    ratings = dict(GOOD_RATINGS, overall=7)
    response = submit(client, submission_payload(employee, period, ratings=ratings))

    assert response.status_code == 400
    body = response.get_json()
    assert body['error'] == 'validation_error'
    assert 'ratings.overall' in body['details']
    assert counter_store.counts == {}


def test_unknown_target_user(client, counter_store, employee, period):
    payload = submission_payload(employee, period, targetUserId='9999')
    assert submit(client, payload).status_code == 404


def test_pending_target_user_not_found(client, counter_store, period):
    pending = make_user('new.hire@example.com', account_status='pending')
    assert submit(client, submission_payload(pending, period)).status_code == 404


def test_inactive_period(client, counter_store, employee):
    closed = make_period(slug='closed-2024', is_active=False)
    response = submit(client, submission_payload(employee, closed))
    assert response.status_code == 400
    assert response.get_json()['error'] == 'period_inactive'


def test_record_store_unavailable_returns_503(client, counter_store, employee, period, monkeypatch):
    from mulaboard.services.stores import SQLRecordStore

    def broken_find_one(self, criteria):
        raise StoreUnavailable('db down')

    monkeypatch.setattr(SQLRecordStore, 'find_one', broken_find_one)
    response = submit(client, submission_payload(employee, period))
    assert response.status_code == 503
    assert response.get_json()['error'] == 'store_unavailable'


# --- POST /api/feedback/check-eligibility ---

def test_check_eligibility(client, counter_store, employee, period):
    payload = {'targetUserId': employee.id, 'reviewPeriodId': period.id, 'fingerprint': 'fp-abc'}

    response = client.post('/api/feedback/check-eligibility', json=payload)
    assert response.status_code == 200
    assert response.get_json()['data'] == {'allowed': True}

    submit(client, submission_payload(employee, period))
    response = client.post('/api/feedback/check-eligibility', json=payload)
    data = response.get_json()['data']
    assert data['allowed'] is False
    assert data['reason'] == 'fingerprint_rate_limit'


def test_check_eligibility_missing_fields(client, counter_store):
    response = client.post('/api/feedback/check-eligibility', json={'fingerprint': 'fp'})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Missing required fields'


# --- GET /api/feedback/my ---

def test_my_feedback_returns_only_approved(client, employee, period):
    create_feedback(employee, period, 'fp-1', status='approved')
    create_feedback(employee, period, 'fp-2', status='approved', ratings={
        'work_quality': 2, 'communication': 2, 'team_behavior': 2, 'accountability': 2, 'overall': 2,
    })
    create_feedback(employee, period, 'fp-3', status='pending')

    response = client.get('/api/feedback/my', headers=auth_headers(employee))
    assert response.status_code == 200
    data = response.get_json()['data']
    assert len(data['feedbacks']) == 2
    assert data['stats']['total'] == 2
    assert data['stats']['counts'] == {'golden_mula': 1, 'fresh_carrot': 0, 'rotten_tomato': 1}
    assert data['stats']['dominant'] == 'golden_mula'
    assert data['stats']['mula_info']['label'] == 'Golden Mula'
    assert 'submitter_fingerprint' not in data['feedbacks'][0]


def test_my_feedback_filtered_by_period(client, employee, period):
    other = make_period(slug='q2-2025', is_active=False)
    create_feedback(employee, period, 'fp-1')
    create_feedback(employee, other, 'fp-2')

    response = client.get(f'/api/feedback/my?period={other.id}', headers=auth_headers(employee))
    assert response.get_json()['data']['stats']['total'] == 1


def test_my_feedback_reads_records_once(client, employee, period, monkeypatch):
    from mulaboard.services.stores import SQLRecordStore

    create_feedback(employee, period, 'fp-1')
    calls = []
    original_find = SQLRecordStore.find

    def counting_find(self, criteria):
        calls.append(criteria)
        return original_find(self, criteria)

    monkeypatch.setattr(SQLRecordStore, 'find', counting_find)
    response = client.get('/api/feedback/my', headers=auth_headers(employee))
    assert response.get_json()['data']['stats']['total'] == 1
    assert len(calls) == 1


def test_my_feedback_requires_token(client):
    response = client.get('/api/feedback/my')
    assert response.status_code == 401
    assert response.get_json()['error'] == 'missing_token'


# --- GET /api/feedback/public ---

def test_public_feedback(client, employee, period):
    create_feedback(employee, period, 'fp-1', visibility='public')
    create_feedback(employee, period, 'fp-2', visibility='private')
    create_feedback(employee, period, 'fp-3', status='pending', visibility='public')

    response = client.get(f'/api/feedback/public?userId={employee.id}')
    assert response.status_code == 200
    data = response.get_json()['data']
    assert len(data['feedbacks']) == 1
    assert data['pagination']['total'] == 1
    assert data['user']['public_slug'] == employee.public_slug
    assert 'stats' not in data


def test_public_feedback_pagination_and_stats(client, employee, period):
    for index in range(3):
        create_feedback(employee, period, f'fp-{index}', visibility='public')
    employee.show_aggregate_publicly = True
    db.session.commit()

    response = client.get(f'/api/feedback/public?slug={employee.public_slug}&limit=2&page=2')
    data = response.get_json()['data']
    assert len(data['feedbacks']) == 1
    assert data['pagination'] == {'page': 2, 'limit': 2, 'total': 3, 'pages': 2}
    assert data['stats']['total'] == 3


def test_public_feedback_unknown_user(client, app):
    assert client.get('/api/feedback/public?userId=12345').status_code == 404
    assert client.get('/api/feedback/public').status_code == 400


# --- PATCH visibility / reaction ---

def test_update_visibility_by_owner(client, employee, period):
    feedback = create_feedback(employee, period, 'fp-1')
    response = client.patch(f'/api/feedback/{feedback.id}/visibility', json={'visibility': 'public'},
                            headers=auth_headers(employee))
    assert response.status_code == 200
    assert db.session.get(Feedback, feedback.id).visibility == 'public'


def test_update_visibility_by_other_user_forbidden(client, employee, period):
    other = make_user('john.smith@example.com', full_name='John Smith')
    feedback = create_feedback(employee, period, 'fp-1')
    response = client.patch(f'/api/feedback/{feedback.id}/visibility', json={'visibility': 'public'},
                            headers=auth_headers(other))
    assert response.status_code == 403


def test_update_visibility_invalid_value(client, employee, period):
    feedback = create_feedback(employee, period, 'fp-1')
    response = client.patch(f'/api/feedback/{feedback.id}/visibility', json={'visibility': 'everyone'},
                            headers=auth_headers(employee))
    assert response.status_code == 400


def test_update_visibility_missing_feedback(client, employee):
    response = client.patch('/api/feedback/999/visibility', json={'visibility': 'public'},
                            headers=auth_headers(employee))
    assert response.status_code == 404
    assert response.get_json()['message'] == 'Feedback not found'


def test_update_reaction(client, employee, period):
    feedback = create_feedback(employee, period, 'fp-1')
    headers = auth_headers(employee)

    response = client.patch(f'/api/feedback/{feedback.id}/reaction', json={'reaction': 'thanks'}, headers=headers)
    assert response.status_code == 200
    assert response.get_json()['data']['employee_reaction'] == 'thanks'

    response = client.patch(f'/api/feedback/{feedback.id}/reaction', json={'reaction': 'meh'}, headers=headers)
    assert response.status_code == 400
