import time

import pytest

from mulaboard.errors import ValidationError
from mulaboard.utils.slug_generator import slugify, is_valid_slug
from mulaboard.utils.validators import (
    normalize_ratings, parse_pagination, validate_feedback_submission, validate_honeypot,
    validate_moderation, validate_period, validate_profile, validate_quote, validate_registration,
    validate_settings, validate_submission_timing,
)
from mulaboard.models.quote import QUOTE_CATEGORIES, QUOTE_MOODS

TEXT = 'This is a sufficiently long piece of feedback.'


def test_honeypot():
    assert validate_honeypot(None)
    assert validate_honeypot('')
    assert not validate_honeypot('http://spam.example.com')


def test_submission_timing():
    now = time.time()
    assert validate_submission_timing((now - 31) * 1000, 30, now=now)
    assert validate_submission_timing((now - 30) * 1000, 30, now=now)
    assert not validate_submission_timing((now - 5) * 1000, 30, now=now)
    assert not validate_submission_timing(None, 30, now=now)
    assert not validate_submission_timing('123', 30, now=now)
    assert not validate_submission_timing(-1, 30, now=now)


def test_normalize_ratings_accepts_both_shapes():
    result = normalize_ratings({
        'workQuality': {'score': 4, 'comment': 'solid'},
        'communication': 5,
        'team_behavior': 3.0,
        'accountability': {'score': 2},
        'overall': 4,
    })
    assert result == {
        'work_quality': 4,
        'communication': 5,
        'team_behavior': 3,
        'accountability': 2,
        'overall': 4,
    }


def test_normalize_ratings_collects_errors():
    with pytest.raises(ValidationError) as exc_info:
        normalize_ratings({'work_quality': 0, 'communication': 3.5, 'team_behavior': 3, 'accountability': 3})
    details = exc_info.value.details
    assert set(details) == {'ratings.work_quality', 'ratings.communication', 'ratings.overall'}


def test_validate_feedback_submission():
    data = validate_feedback_submission({
        'targetUserId': 3,
        'reviewPeriodId': '5',
        'fingerprint': ' fp ',
        'ratings': {'work_quality': 4, 'communication': 4, 'team_behavior': 4, 'accountability': 4, 'overall': 4},
        'strengths': TEXT,
        'improvements': TEXT,
    })
    assert data['target_user_id'] == '3'
    assert data['review_period_id'] == '5'
    assert data['fingerprint'] == 'fp'
    assert data['ratings']['overall'] == 4


def test_validate_feedback_submission_text_length():
    with pytest.raises(ValidationError) as exc_info:
        validate_feedback_submission({
            'targetUserId': '3',
            'reviewPeriodId': '5',
            'fingerprint': 'fp',
            'ratings': {'work_quality': 4, 'communication': 4, 'team_behavior': 4, 'accountability': 4, 'overall': 4},
            'strengths': 'too short',
            'improvements': 'x' * 501,
        })
    assert set(exc_info.value.details) == {'strengths', 'improvements'}


def test_validate_feedback_submission_missing_ids():
    with pytest.raises(ValidationError) as exc_info:
        validate_feedback_submission({'fingerprint': 'fp'})
    assert exc_info.value.message == 'Missing required fields'
    assert 'targetUserId' in exc_info.value.details


def test_validate_moderation():
    assert validate_moderation({'action': 'approve'}) == {'action': 'approve', 'note': None}
    assert validate_moderation({'action': 'reject', 'note': ' spam '})['note'] == 'spam'
    with pytest.raises(ValidationError):
        validate_moderation({'action': 'flag'})
    with pytest.raises(ValidationError):
        validate_moderation(None)


def test_validate_registration():
    data = validate_registration({
        'email': 'Jane@Example.com',
        'password': 'password123',
        'fullName': 'Jane Doe',
        'designation': 'Engineer',
        'department': 'Platform',
    })
    assert data['email'] == 'jane@example.com'

    with pytest.raises(ValidationError) as exc_info:
        validate_registration({'email': 'nope', 'password': 'short'})
    assert {'email', 'password', 'fullName'} <= set(exc_info.value.details)


def test_validate_period():
    data = validate_period({
        'name': 'Q1 Review',
        'slug': 'q1-2025',
        'startDate': '2025-01-01T00:00:00Z',
        'endDate': '2025-03-31T00:00:00',
        'theme': {'backgroundColor': '#fff'},
    })
    assert data['slug'] == 'q1-2025'
    assert data['start_date'].tzinfo is None
    assert data['theme_background_color'] == '#fff'


@pytest.mark.parametrize('overrides, field', [
    ({'slug': 'Bad Slug'}, 'slug'),
    ({'slug': 'ab'}, 'slug'),
    ({'name': 'ab'}, 'name'),
    ({'endDate': '2024-12-31T00:00:00'}, 'endDate'),
    ({'startDate': 'yesterday'}, 'startDate'),
    ({'theme': {'backgroundColor': 'green'}}, 'theme.backgroundColor'),
])
def test_validate_period_errors(overrides, field):
    data = {
        'name': 'Q1 Review',
        'slug': 'q1-2025',
        'startDate': '2025-01-01T00:00:00',
        'endDate': '2025-03-31T00:00:00',
    }
    data.update(overrides)
    with pytest.raises(ValidationError) as exc_info:
        validate_period(data)
    assert field in exc_info.value.details


def test_validate_period_partial():
    assert validate_period({'isActive': True}, partial=True) == {'is_active': True}


def test_validate_quote():
    data = validate_quote({'text': 'Feedback is a gift.', 'category': 'landing', 'mood': 'wise'},
                          QUOTE_CATEGORIES, QUOTE_MOODS)
    assert data == {'text': 'Feedback is a gift.', 'category': 'landing', 'mood': 'wise'}
    with pytest.raises(ValidationError):
        validate_quote({'text': 'short', 'category': 'nowhere', 'mood': 'wise'}, QUOTE_CATEGORIES, QUOTE_MOODS)


def test_validate_profile():
    data = validate_profile({
        'fullName': ' Jane Doe ',
        'designation': 'Engineer',
        'department': 'Platform',
        'profileImage': 'https://cdn.example.com/a.png',
    })
    assert data == {
        'full_name': 'Jane Doe',
        'designation': 'Engineer',
        'department': 'Platform',
        'profile_image': 'https://cdn.example.com/a.png',
    }

    with pytest.raises(ValidationError) as exc_info:
        validate_profile({'fullName': 'Jane Doe', 'designation': 'Engineer', 'bio': 'x' * 201})
    assert set(exc_info.value.details) == {'department', 'bio'}


def test_validate_settings():
    assert validate_settings({'emailNotifications': False, 'other': 1}) == {'email_notifications': False}
    with pytest.raises(ValidationError):
        validate_settings({'isProfileActive': 'true'})


def test_parse_pagination():
    assert parse_pagination({}) == (1, 10)
    assert parse_pagination({'page': '3', 'limit': '500'}) == (3, 50)
    assert parse_pagination({'page': '-2', 'limit': 'abc'}) == (1, 10)


def test_slugify():
    assert slugify('Jane Doe') == 'jane-doe'
    assert slugify('  Émile   Zola!! ') == 'emile-zola'
    assert slugify('张伟') == 'zhang-wei'
    assert is_valid_slug('annual-2025')
    assert not is_valid_slug('Annual 2025')
