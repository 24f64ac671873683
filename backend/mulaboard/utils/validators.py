"""
请求数据校验工具。

每个 validate_* 函数接收请求 JSON（dict），校验通过后返回规范化的数据，
校验失败时抛出 ValidationError，details 为 {字段: 错误信息}。

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
import re
import time
from datetime import datetime, timezone

from mulaboard.errors import ValidationError
from mulaboard.services.rating_aggregator import RATING_CATEGORIES, MIN_SCORE, MAX_SCORE

FEEDBACK_TEXT_MIN = 20
FEEDBACK_TEXT_MAX = 500
MODERATION_NOTE_MAX = 500

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
PERIOD_SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
HEX_COLOR_PATTERN = re.compile(r'^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$')
URL_PATTERN = re.compile(r'^https?://\S+$')

# 前端表单使用驼峰命名
CATEGORY_ALIASES = {
    'workQuality': 'work_quality',
    'teamBehavior': 'team_behavior',
}

SETTINGS_FIELDS = (
    ('isProfileActive', 'is_profile_active'),
    ('emailNotifications', 'email_notifications'),
    ('showAggregatePublicly', 'show_aggregate_publicly'),
)


def _require_dict(data):
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _string(data, field, errors, min_len=None, max_len=None, required=True, label=None):
    """取出并 strip 字符串字段，长度不符时把错误写入 errors"""
    label = label or field
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors[field] = f'{label} is required'
        return None
    if not isinstance(value, str):
        errors[field] = f'{label} must be a string'
        return None
    value = value.strip()
    if min_len is not None and len(value) < min_len:
        errors[field] = f'{label} must be at least {min_len} characters'
    elif max_len is not None and len(value) > max_len:
        errors[field] = f'{label} cannot exceed {max_len} characters'
    return value


def _raise_if(errors, message='Validation failed'):
    if errors:
        raise ValidationError(message, details=errors)


def _identifier(value):
    """ID 可以是整数或字符串，统一转成字符串交给资格检查"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _parse_datetime(value):
    if not isinstance(value, str):
        raise ValueError(value)
    # 兼容 JavaScript toISOString() 的 Z 后缀
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def validate_honeypot(value):
    """蜂蜜罐字段必须为空"""
    return value is None or value == ''


def validate_submission_timing(form_load_time, min_seconds=30, now=None):
    """
    表单从加载到提交至少经过 min_seconds 秒。

    Args:
        form_load_time: 表单加载时间，毫秒时间戳
        now: 当前时间（秒），测试时注入
    """
    if isinstance(form_load_time, bool) or not isinstance(form_load_time, (int, float)):
        return False
    if form_load_time <= 0:
        return False
    now = time.time() if now is None else now
    return (now * 1000 - form_load_time) >= min_seconds * 1000


def normalize_ratings(ratings):
    """
    把前端提交的评分规范化为 {维度: 整数}。

    每个维度既可以直接是整数，也可以是 {"score": 整数, "comment": ...}。
    """
    errors = {}
    if not isinstance(ratings, dict):
        raise ValidationError('Validation failed', details={'ratings': 'ratings must be an object'})

    normalized_input = {CATEGORY_ALIASES.get(key, key): value for key, value in ratings.items()}
    result = {}
    for category in RATING_CATEGORIES:
        value = normalized_input.get(category)
        if isinstance(value, dict):
            value = value.get('score')
        if value is None:
            errors[f'ratings.{category}'] = 'Rating is required'
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            # 前端可能传 4.0
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            else:
                errors[f'ratings.{category}'] = 'Rating must be a whole number'
                continue
        if not MIN_SCORE <= value <= MAX_SCORE:
            errors[f'ratings.{category}'] = f'Rating must be between {MIN_SCORE} and {MAX_SCORE}'
            continue
        result[category] = value

    _raise_if(errors)
    return result


def validate_eligibility_request(data):
    data = _require_dict(data)
    errors = {}
    target_user_id = _identifier(data.get('targetUserId'))
    review_period_id = _identifier(data.get('reviewPeriodId'))
    fingerprint = _string(data, 'fingerprint', errors, max_len=128, label='Browser fingerprint')
    if target_user_id is None:
        errors['targetUserId'] = 'Target user is required'
    if review_period_id is None:
        errors['reviewPeriodId'] = 'Review period is required'
    _raise_if(errors, 'Missing required fields')
    return {
        'target_user_id': target_user_id,
        'review_period_id': review_period_id,
        'fingerprint': fingerprint,
    }


def validate_feedback_submission(data):
    """校验匿名反馈提交的内容部分（蜂蜜罐和表单计时由路由单独检查）"""
    identifiers = validate_eligibility_request(data)
    errors = {}
    try:
        ratings = normalize_ratings(data.get('ratings'))
    except ValidationError as e:
        errors.update(e.details or {})
        ratings = None
    strengths = _string(data, 'strengths', errors, FEEDBACK_TEXT_MIN, FEEDBACK_TEXT_MAX, label='Strengths')
    improvements = _string(data, 'improvements', errors, FEEDBACK_TEXT_MIN, FEEDBACK_TEXT_MAX,
                           label='Areas for improvement')
    _raise_if(errors)

    identifiers.update({
        'ratings': ratings,
        'strengths': strengths,
        'improvements': improvements,
    })
    return identifiers


def validate_moderation(data):
    data = _require_dict(data)
    errors = {}
    action = data.get('action')
    if action not in ('approve', 'reject'):
        errors['action'] = 'Action must be either approve or reject'
    note = _string(data, 'note', errors, max_len=MODERATION_NOTE_MAX, required=False, label='Moderation note')
    _raise_if(errors)
    return {'action': action, 'note': note}


def validate_registration(data):
    data = _require_dict(data)
    errors = {}
    email = _string(data, 'email', errors, max_len=100, label='Email')
    if email and not EMAIL_PATTERN.match(email):
        errors['email'] = 'Please enter a valid email address'
    password = data.get('password')
    if not isinstance(password, str) or len(password) < 8:
        errors['password'] = 'Password must be at least 8 characters'
    full_name = _string(data, 'fullName', errors, 2, 100, label='Full name')
    designation = _string(data, 'designation', errors, 2, 100, label='Designation')
    department = _string(data, 'department', errors, 2, 100, label='Department')
    _raise_if(errors)
    return {
        'email': email.lower(),
        'password': password,
        'full_name': full_name,
        'designation': designation,
        'department': department,
    }


def validate_period(data, partial=False):
    """
    校验评审周期的创建/更新数据。

    Args:
        partial: 为 True 时只校验提交了的字段（PATCH）

    Returns:
        dict: 模型字段名 -> 值
    """
    data = _require_dict(data)
    errors = {}
    result = {}

    if not partial or 'name' in data:
        result['name'] = _string(data, 'name', errors, 3, 100, label='Period name')
    if not partial or 'slug' in data:
        slug = _string(data, 'slug', errors, 3, 50, label='Slug')
        if slug and 'slug' not in errors and not PERIOD_SLUG_PATTERN.match(slug):
            errors['slug'] = 'Slug must contain only lowercase letters, numbers, and hyphens'
        result['slug'] = slug

    for field, column in (('startDate', 'start_date'), ('endDate', 'end_date')):
        if partial and field not in data:
            continue
        try:
            result[column] = _parse_datetime(data.get(field))
        except (TypeError, ValueError):
            errors[field] = 'Invalid date'

    if 'start_date' in result and 'end_date' in result and 'startDate' not in errors and 'endDate' not in errors:
        if result['end_date'] <= result['start_date']:
            errors['endDate'] = 'End date must be after start date'

    if 'isActive' in data:
        if not isinstance(data['isActive'], bool):
            errors['isActive'] = 'isActive must be a boolean'
        else:
            result['is_active'] = data['isActive']

    theme = data.get('theme')
    if theme is not None:
        if not isinstance(theme, dict):
            errors['theme'] = 'theme must be an object'
        else:
            if 'name' in theme:
                result['theme_name'] = _string(theme, 'name', errors, max_len=100, label='Theme name')
            if 'primaryEmoji' in theme:
                result['theme_emoji'] = _string(theme, 'primaryEmoji', errors, max_len=10, label='Theme emoji')
            color = theme.get('backgroundColor')
            if color is not None:
                if not isinstance(color, str) or not HEX_COLOR_PATTERN.match(color):
                    errors['theme.backgroundColor'] = 'Invalid hex color'
                else:
                    result['theme_background_color'] = color

    _raise_if(errors)
    return {key: value for key, value in result.items() if value is not None}


def validate_quote(data, categories, moods, partial=False):
    data = _require_dict(data)
    errors = {}
    result = {}

    if not partial or 'text' in data:
        result['text'] = _string(data, 'text', errors, 10, 500, label='Quote text')
    for field, allowed in (('category', categories), ('mood', moods)):
        if partial and field not in data:
            continue
        value = data.get(field)
        if value not in allowed:
            errors[field] = f'{field} must be one of: {", ".join(allowed)}'
        else:
            result[field] = value
    if 'isActive' in data:
        if not isinstance(data['isActive'], bool):
            errors['isActive'] = 'isActive must be a boolean'
        else:
            result['is_active'] = data['isActive']

    _raise_if(errors)
    return {key: value for key, value in result.items() if value is not None}


def parse_pagination(args, default_limit=10, max_limit=50):
    """从查询参数读取 page/limit，非法值回退到默认值"""
    try:
        page = max(int(args.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def validate_profile(data):
    """个人资料更新：姓名/职位/部门必填，简介和头像可以为空字符串"""
    data = _require_dict(data)
    errors = {}
    result = {
        'full_name': _string(data, 'fullName', errors, 2, 100, label='Full name'),
        'designation': _string(data, 'designation', errors, 2, 100, label='Designation'),
        'department': _string(data, 'department', errors, 2, 100, label='Department'),
    }
    if 'bio' in data:
        bio = _string(data, 'bio', errors, max_len=200, required=False, label='Bio')
        if 'bio' not in errors:
            result['bio'] = bio
    if 'profileImage' in data:
        image = _string(data, 'profileImage', errors, max_len=255, required=False, label='Profile image')
        if image and 'profileImage' not in errors and not URL_PATTERN.match(image):
            errors['profileImage'] = 'Please provide a valid URL'
        elif 'profileImage' not in errors:
            result['profile_image'] = image
    _raise_if(errors)
    return result


def validate_settings(data):
    data = _require_dict(data)
    errors = {}
    result = {}
    for field, column in SETTINGS_FIELDS:
        if field not in data:
            continue
        if not isinstance(data[field], bool):
            errors[field] = f'{field} must be a boolean'
        else:
            result[column] = data[field]
    _raise_if(errors)
    return result
