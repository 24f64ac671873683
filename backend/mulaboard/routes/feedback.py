"""
此模块定义了匿名反馈相关的 API 端点。

主要功能:
- 匿名提交反馈 (蜂蜜罐、表单计时、内容校验、资格检查、计数器提交、记录尝试)。
- 提交前的资格预检查。
- 员工查看自己收到的已审核反馈及聚合统计。
- 公开主页展示已公开的反馈 (分页)。
- 员工修改自己收到的反馈的可见性、添加反应。

依赖模型: Feedback, FeedbackAttempt, User, ReviewPeriod
使用 Flask 蓝图: feedback_bp (前缀 /api/feedback)

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy.exc import SQLAlchemyError

from mulaboard import db, limiter
from mulaboard.extensions import get_counter_store, get_record_store
from mulaboard.models import Feedback, FeedbackAttempt, User, ReviewPeriod
from mulaboard.models.feedback import VISIBILITIES, EMPLOYEE_REACTIONS
from mulaboard.services.eligibility import check_eligibility, commit_submission, decision_to_dict, hash_ip
from mulaboard.services.rating_aggregator import (
    MULA_RATINGS, aggregate, aggregate_for_user, to_dict as aggregate_to_dict,
)
from mulaboard.utils.auth_utils import get_current_user
from mulaboard.utils.validators import (
    validate_honeypot, validate_submission_timing, validate_feedback_submission,
    validate_eligibility_request, parse_pagination,
)

feedback_bp = Blueprint('feedback', __name__)

# 资格被拒绝时的状态码，存储不可用属于服务端问题
DENIAL_STATUS = {
    'store_unavailable': 503,
}


def _submit_limit():
    return current_app.config['RATELIMIT_SUBMIT']


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_client_ip():
    """依次读取 X-Forwarded-For 第一个地址、X-Real-IP、连接地址"""
    forwarded_for = request.headers.get('X-Forwarded-For', '')
    if forwarded_for.strip():
        return forwarded_for.split(',')[0].strip()
    real_ip = request.headers.get('X-Real-IP', '').strip()
    if real_ip:
        return real_ip
    return request.remote_addr or '127.0.0.1'


def _record_attempt(fingerprint, ip_address, target_user_id, review_period_id, status, block_reason=None):
    """写入提交尝试记录，失败只记日志，不影响提交结果"""
    try:
        db.session.add(FeedbackAttempt(
            fingerprint=fingerprint,
            ip_hash=hash_ip(ip_address),
            target_user_id=str(target_user_id),
            review_period_id=str(review_period_id),
            status=status,
            block_reason=block_reason,
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"记录反馈尝试失败: {e}")


def _eligibility_limits():
    return {
        'fingerprint_limit': current_app.config['FEEDBACK_FINGERPRINT_LIMIT'],
        'ip_limit': current_app.config['FEEDBACK_IP_LIMIT'],
    }


@feedback_bp.route('', methods=['POST'])
@limiter.limit(_submit_limit)
def submit_feedback():
    """匿名提交反馈"""
    data = request.get_json(silent=True) or {}

    # 1. 蜂蜜罐必须为空
    if not validate_honeypot(data.get('honeypot')):
        current_app.logger.warning(f"蜂蜜罐字段被填写，拒绝提交: ip={get_client_ip()}")
        return jsonify({
            'success': False,
            'error': 'invalid_submission',
            'message': 'Invalid submission detected',
        }), 400

    # 2. 表单填写时间
    if not validate_submission_timing(data.get('formLoadTime'), current_app.config['FEEDBACK_MIN_FORM_SECONDS']):
        return jsonify({
            'success': False,
            'error': 'submitted_too_quickly',
            'message': 'Form submitted too quickly. Please take your time to provide thoughtful feedback.',
        }), 400

    # 3. 内容校验，失败抛出 ValidationError
    payload = validate_feedback_submission(data)
    fingerprint = payload['fingerprint']
    target_user_id = payload['target_user_id']
    review_period_id = payload['review_period_id']
    ip_address = get_client_ip()

    counter_store = get_counter_store()
    record_store = get_record_store()
    limits = _eligibility_limits()

    # 4. 资格检查
    decision = check_eligibility(fingerprint, ip_address, target_user_id, review_period_id,
                                 counter_store, record_store, **limits)
    if not decision.allowed:
        _record_attempt(fingerprint, ip_address, target_user_id, review_period_id, 'blocked', decision.reason)
        current_app.logger.info(f"反馈提交被拒绝: reason={decision.reason}, target={target_user_id}, period={review_period_id}")
        return jsonify({
            'success': False,
            'error': decision.reason,
            'message': decision.message,
        }), DENIAL_STATUS.get(decision.reason, 403)

    # 5. 目标用户和评审周期
    target_user = None
    target_id = _to_int(target_user_id)
    if target_id is not None:
        target_user = db.session.get(User, target_id)
    if not target_user or target_user.account_status != 'approved':
        return jsonify({'success': False, 'error': 'not_found', 'message': 'User not found'}), 404

    period = None
    period_id = _to_int(review_period_id)
    if period_id is not None:
        period = db.session.get(ReviewPeriod, period_id)
    if not period:
        return jsonify({'success': False, 'error': 'not_found', 'message': 'Review period not found'}), 404
    if not period.is_active:
        return jsonify({
            'success': False,
            'error': 'period_inactive',
            'message': 'This review period is no longer active',
        }), 400

    # 6. 原子递增计数器；并发请求在这里被挡住
    if not commit_submission(counter_store, fingerprint, ip_address, target_user_id, review_period_id,
                             window_seconds=current_app.config['FEEDBACK_RATE_WINDOW'], **limits):
        _record_attempt(fingerprint, ip_address, target_user_id, review_period_id, 'blocked', 'rate_limit_exceeded')
        return jsonify({
            'success': False,
            'error': 'rate_limit_exceeded',
            'message': 'Too many submissions. Please try again later.',
        }), 429

    # 7. 写入反馈，唯一约束冲突抛出 DuplicateSubmission (409)
    feedback = record_store.create({
        'target_user_id': target_user.id,
        'review_period_id': period.id,
        'submitter_fingerprint': fingerprint,
        'submitter_ip': hash_ip(ip_address),
        'ratings': payload['ratings'],
        'strengths': payload['strengths'],
        'improvements': payload['improvements'],
        'visibility': 'private',
        'moderation_status': 'pending',
    })

    # 8. 记录成功的尝试
    _record_attempt(fingerprint, ip_address, target_user_id, review_period_id, 'completed')
    current_app.logger.info(f"收到新反馈 {feedback.id}: target={target_user.id}, period={period.id}, rating={feedback.mula_rating}")

    return jsonify({
        'success': True,
        'message': 'Feedback submitted successfully!',
        'data': {
            'id': feedback.id,
            'mula_rating': feedback.mula_rating,
            'average_score': feedback.average_score(),
        },
    }), 201


@feedback_bp.route('/check-eligibility', methods=['POST'])
@limiter.limit(_submit_limit)
def check_feedback_eligibility():
    """提交前检查能否给某人在某周期留下反馈"""
    payload = validate_eligibility_request(request.get_json(silent=True) or {})
    decision = check_eligibility(
        payload['fingerprint'],
        get_client_ip(),
        payload['target_user_id'],
        payload['review_period_id'],
        get_counter_store(),
        get_record_store(),
        **_eligibility_limits(),
    )
    return jsonify({'success': True, 'data': decision_to_dict(decision)}), 200


@feedback_bp.route('/my', methods=['GET'])
@jwt_required()
def get_my_feedback():
    """当前用户收到的已审核反馈，可按评审周期筛选"""
    user = get_current_user()
    if not user:
        return jsonify({'success': False, 'error': 'not_found', 'message': 'User not found'}), 404

    period_id = request.args.get('period')
    if period_id is not None and _to_int(period_id) is None:
        return jsonify({'success': False, 'error': 'validation_error', 'message': 'Invalid period id'}), 400

    record_store = get_record_store()
    criteria = {'target_user_id': user.id, 'moderation_status': 'approved'}
    if period_id is not None:
        criteria['review_period_id'] = period_id
    feedbacks = record_store.find(criteria)

    result = aggregate(feedback.ratings for feedback in feedbacks)
    stats = aggregate_to_dict(result)
    stats['mula_info'] = MULA_RATINGS.get(result.dominant_bucket)

    return jsonify({
        'success': True,
        'data': {
            'feedbacks': [feedback.to_dict() for feedback in feedbacks],
            'stats': stats,
        },
    }), 200


@feedback_bp.route('/public', methods=['GET'])
def get_public_feedback():
    """公开主页：已审核且公开的反馈，分页"""
    user_id = _to_int(request.args.get('userId'))
    slug = request.args.get('slug')
    if user_id is None and not slug:
        return jsonify({'success': False, 'error': 'validation_error', 'message': 'userId is required'}), 400

    if user_id is not None:
        user = db.session.get(User, user_id)
    else:
        user = User.query.filter_by(public_slug=slug).first()
    if not user or not user.is_profile_active or user.account_status != 'approved':
        return jsonify({'success': False, 'error': 'not_found', 'message': 'User not found'}), 404

    page, limit = parse_pagination(request.args)
    pagination = Feedback.query.filter_by(
        target_user_id=user.id,
        moderation_status='approved',
        visibility='public',
    ).order_by(Feedback.created_at.desc()).paginate(page=page, per_page=limit, error_out=False)

    data = {
        'user': user.to_public_dict(),
        'feedbacks': [feedback.to_public_dict() for feedback in pagination.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': pagination.total,
            'pages': pagination.pages,
        },
    }
    if user.show_aggregate_publicly:
        data['stats'] = aggregate_to_dict(aggregate_for_user(get_record_store(), user.id))

    return jsonify({'success': True, 'data': data}), 200


def _owned_feedback(feedback_id):
    """返回 (feedback, 错误响应)；只有反馈的接收人可以修改"""
    user = get_current_user()
    feedback = db.get_or_404(Feedback, feedback_id)
    if not user or feedback.target_user_id != user.id:
        return None, (jsonify({
            'success': False,
            'error': 'forbidden',
            'message': 'You can only change your own feedback',
        }), 403)
    return feedback, None


@feedback_bp.route('/<int:feedback_id>/visibility', methods=['PATCH'])
@jwt_required()
def update_visibility(feedback_id):
    data = request.get_json(silent=True) or {}
    visibility = data.get('visibility')
    if visibility not in VISIBILITIES:
        return jsonify({
            'success': False,
            'error': 'validation_error',
            'message': 'Visibility must be either private or public',
        }), 400

    feedback, error_response = _owned_feedback(feedback_id)
    if error_response:
        return error_response

    feedback.visibility = visibility
    db.session.commit()
    current_app.logger.info(f"反馈 {feedback.id} 可见性改为 {visibility}")
    return jsonify({'success': True, 'data': {'id': feedback.id, 'visibility': feedback.visibility}}), 200


@feedback_bp.route('/<int:feedback_id>/reaction', methods=['PATCH'])
@jwt_required()
def update_reaction(feedback_id):
    data = request.get_json(silent=True) or {}
    reaction = data.get('reaction')
    # None 表示撤销反应
    if reaction is not None and reaction not in EMPLOYEE_REACTIONS:
        return jsonify({
            'success': False,
            'error': 'validation_error',
            'message': 'Invalid reaction type',
        }), 400

    feedback, error_response = _owned_feedback(feedback_id)
    if error_response:
        return error_response

    feedback.employee_reaction = reaction
    db.session.commit()
    return jsonify({'success': True, 'data': {'id': feedback.id, 'employee_reaction': feedback.employee_reaction}}), 200
