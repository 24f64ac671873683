"""
匿名反馈提交资格检查

检查顺序：
1. 指纹计数器 (fingerprint + 目标用户 + 评审周期)
2. IP 计数器 (IP 摘要 + 目标用户 + 评审周期)
3. 反馈表中同一指纹是否已有待审/已通过记录，同一 IP 的此类记录是否达到上限

计数器存储 (Redis) 只是尽力而为：未配置或不可用时放行并记录警告。
反馈表是"是否已经提交过"的权威来源：不可用时直接拒绝。

check_eligibility 只读不写；真正提交时由调用方调用 commit_submission 原子递增计数。
两次调用之间存在很窄的竞争窗口，由反馈表的唯一约束兜底。
"""
import hashlib
import logging
from collections import namedtuple

from mulaboard.errors import StoreUnavailable, ValidationError

logger = logging.getLogger(__name__)

EligibilityDecision = namedtuple('EligibilityDecision', ['allowed', 'reason', 'message'])

ALLOWED = EligibilityDecision(True, None, None)

# 视为"已经提交过"的审核状态，被驳回的记录不计入
BLOCKING_STATUSES = ('pending', 'approved')

MESSAGES = {
    'fingerprint_rate_limit': "You're submitting feedback too quickly for this person. Please try again later.",
    'ip_rate_limit': 'Too many submissions from your network for this person. Please try again later.',
    'already_submitted': 'You have already submitted feedback for this person in this review period.',
    'store_unavailable': 'We could not verify your eligibility right now. Please try again in a moment.',
}


def hash_ip(ip_address):
    """只保存 IP 的 SHA-256 摘要"""
    return hashlib.sha256(ip_address.encode('utf-8')).hexdigest()


def fingerprint_key(fingerprint, target_user_id, review_period_id):
    return f'feedback:fp:{fingerprint}:{target_user_id}:{review_period_id}'


def ip_key(ip_address, target_user_id, review_period_id):
    return f'feedback:ip:{hash_ip(ip_address)}:{target_user_id}:{review_period_id}'


def _deny(reason):
    return EligibilityDecision(False, reason, MESSAGES[reason])


def _validate_identifiers(**identifiers):
    missing = [name for name, value in identifiers.items()
               if not isinstance(value, str) or not value.strip()]
    if missing:
        raise ValidationError(
            'Missing required fields',
            details={name: 'must be a non-empty string' for name in missing},
        )


def _counter_exceeded(counter_store, key, limit):
    """计数已达上限返回 True；计数器不可用时放行"""
    try:
        count = counter_store.get(key)
    except StoreUnavailable as e:
        logger.warning(f"计数器存储不可用，跳过限流检查: {e}")
        return False
    return (count or 0) >= limit


def _durable_denial(record_store, fingerprint, ip_address, target_user_id, review_period_id, ip_limit):
    """
    按反馈表判断是否已经提交过。

    同一指纹只要有一条待审/已通过记录即拒绝；同一 IP 摘要的记录数达到 ip_limit 才拒绝，
    共用出口 IP 的办公网络里不同的人仍可各提交一次。
    """
    scope = {'target_user_id': target_user_id, 'review_period_id': review_period_id}

    for status in BLOCKING_STATUSES:
        existing = record_store.find_one(dict(scope, submitter_fingerprint=fingerprint,
                                              moderation_status=status))
        if existing is not None:
            return _deny('already_submitted')

    ip_hash = hash_ip(ip_address)
    ip_records = sum(
        record_store.count(dict(scope, submitter_ip=ip_hash, moderation_status=status))
        for status in BLOCKING_STATUSES
    )
    if ip_records >= ip_limit:
        return _deny('already_submitted')
    return None


def check_eligibility(fingerprint, ip_address, target_user_id, review_period_id,
                      counter_store, record_store, fingerprint_limit=1, ip_limit=1):
    """
    判断 (指纹, IP, 目标用户, 评审周期) 能否提交一条新反馈。

    Returns:
        EligibilityDecision(allowed, reason, message)

    Raises:
        ValidationError: 任一标识为空，此时不会访问任何存储
    """
    _validate_identifiers(
        fingerprint=fingerprint,
        ip_address=ip_address,
        target_user_id=target_user_id,
        review_period_id=review_period_id,
    )

    if counter_store is None:
        logger.warning("计数器存储未配置，跳过限流检查")
    else:
        if _counter_exceeded(counter_store, fingerprint_key(fingerprint, target_user_id, review_period_id),
                             fingerprint_limit):
            return _deny('fingerprint_rate_limit')

        if _counter_exceeded(counter_store, ip_key(ip_address, target_user_id, review_period_id), ip_limit):
            return _deny('ip_rate_limit')

    # 计数器可能已过期或丢失，反馈表才是权威来源
    try:
        denial = _durable_denial(record_store, fingerprint, ip_address, target_user_id, review_period_id,
                                 ip_limit)
    except StoreUnavailable as e:
        logger.error(f"反馈记录存储不可用，拒绝提交: {e}")
        return _deny('store_unavailable')

    return denial or ALLOWED


def commit_submission(counter_store, fingerprint, ip_address, target_user_id, review_period_id,
                      fingerprint_limit=1, ip_limit=1, window_seconds=3600):
    """
    提交成功后递增两个计数器，每个键的递增和过期时间在同一个事务里写入。

    Returns:
        bool: 递增后两个计数都未超过上限；计数器不可用时返回 True
    """
    if counter_store is None:
        logger.warning("计数器存储未配置，提交未计数")
        return True

    within_limit = True
    keys = (
        (fingerprint_key(fingerprint, target_user_id, review_period_id), fingerprint_limit),
        (ip_key(ip_address, target_user_id, review_period_id), ip_limit),
    )
    try:
        for key, limit in keys:
            if counter_store.increment(key, window_seconds) > limit:
                within_limit = False
    except StoreUnavailable as e:
        logger.warning(f"计数器存储不可用，提交未计数: {e}")
        return True
    return within_limit


def decision_to_dict(decision):
    payload = {'allowed': decision.allowed}
    if decision.reason:
        payload['reason'] = decision.reason
        payload['message'] = decision.message
    return payload
