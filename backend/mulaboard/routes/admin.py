"""
此模块定义了管理后台的 API 端点，所有端点都需要管理员权限。

主要功能:
- 反馈审核：按状态列出、通过/驳回（可附备注）、删除。
- 后台统计：总览计数、全局和当前周期的 Mula 分布、角色分布、近 30 天活动、提交尝试统计。
- 用户管理：按审核状态列出用户、通过/驳回注册。
- 查看和重置错误统计。

依赖模型: Feedback, FeedbackAttempt, User, ReviewPeriod
使用 Flask 蓝图: admin_bp (前缀 /api/admin)

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func

from mulaboard import db
from mulaboard.models import Feedback, FeedbackAttempt, User, ReviewPeriod
from mulaboard.models.feedback import MODERATION_STATUSES
from mulaboard.models.user import ACCOUNT_STATUSES, ROLES
from mulaboard.services.rating_aggregator import BUCKET_PRECEDENCE, bucket_percentages, dominant_bucket
from mulaboard.utils.auth_utils import admin_required, get_current_user
from mulaboard.utils.error_handler import ErrorHandler
from mulaboard.utils.validators import validate_moderation, parse_pagination

admin_bp = Blueprint('admin', __name__)


def _mula_distribution(review_period_id=None):
    """按 mula_rating 分组计数，返回计数、百分比和主导档位"""
    query = db.session.query(Feedback.mula_rating, func.count(Feedback.id))
    if review_period_id is not None:
        query = query.filter(Feedback.review_period_id == review_period_id)
    rows = dict(query.group_by(Feedback.mula_rating).all())
    counts = {bucket: rows.get(bucket, 0) for bucket in BUCKET_PRECEDENCE}
    total = sum(counts.values())
    return {
        'counts': counts,
        'percentage': bucket_percentages(counts, total),
        'dominant': dominant_bucket(counts),
        'total': total,
    }


def _pagination_dict(pagination, page, limit):
    return {
        'page': page,
        'limit': limit,
        'total': pagination.total,
        'pages': pagination.pages,
    }


# --- 反馈审核 ---

@admin_bp.route('/feedbacks', methods=['GET'])
@admin_required
def list_feedbacks():
    status = request.args.get('status', 'pending')
    if status != 'all' and status not in MODERATION_STATUSES:
        return jsonify({'success': False, 'error': 'validation_error', 'message': f'Invalid status: {status}'}), 400

    page, limit = parse_pagination(request.args, default_limit=20, max_limit=100)
    query = Feedback.query
    if status != 'all':
        query = query.filter_by(moderation_status=status)
    period_id = request.args.get('period', type=int)
    if period_id is not None:
        query = query.filter_by(review_period_id=period_id)

    pagination = query.order_by(Feedback.created_at.desc()).paginate(page=page, per_page=limit, error_out=False)

    feedbacks = []
    for feedback in pagination.items:
        item = feedback.to_dict()
        item['target_user'] = feedback.target_user.to_public_dict() if feedback.target_user else None
        feedbacks.append(item)

    return jsonify({
        'success': True,
        'data': {
            'feedbacks': feedbacks,
            'pagination': _pagination_dict(pagination, page, limit),
        },
    }), 200


@admin_bp.route('/feedbacks/<int:feedback_id>', methods=['PATCH'])
@admin_required
def moderate_feedback(feedback_id):
    data = validate_moderation(request.get_json(silent=True))
    feedback = db.get_or_404(Feedback, feedback_id)
    admin = get_current_user()

    feedback.moderation_status = 'approved' if data['action'] == 'approve' else 'rejected'
    feedback.moderation_note = data['note']
    feedback.moderated_by_id = admin.id
    feedback.moderated_at = datetime.utcnow()
    db.session.commit()

    current_app.logger.info(f"管理员 {admin.email} 将反馈 {feedback.id} 标记为 {feedback.moderation_status}")
    return jsonify({
        'success': True,
        'message': f'Feedback {feedback.moderation_status}',
        'data': feedback.to_dict(),
    }), 200


@admin_bp.route('/feedbacks/<int:feedback_id>', methods=['DELETE'])
@admin_required
def delete_feedback(feedback_id):
    feedback = db.get_or_404(Feedback, feedback_id)
    db.session.delete(feedback)
    db.session.commit()
    current_app.logger.info(f"反馈 {feedback_id} 已删除")
    return jsonify({'success': True, 'message': 'Feedback deleted'}), 200


# --- 统计 ---

@admin_bp.route('/stats', methods=['GET'])
@admin_required
def get_stats():
    status_counts = dict(
        db.session.query(Feedback.moderation_status, func.count(Feedback.id))
        .group_by(Feedback.moderation_status).all()
    )
    role_counts = dict(db.session.query(User.role, func.count(User.id)).group_by(User.role).all())
    account_counts = dict(
        db.session.query(User.account_status, func.count(User.id)).group_by(User.account_status).all()
    )

    active_period = ReviewPeriod.get_active()
    current_period_stats = None
    if active_period:
        distribution = _mula_distribution(active_period.id)
        current_period_stats = {
            'period': active_period.to_brief_dict(),
            'feedback_count': distribution['total'],
            'distribution': distribution,
            'attempts': FeedbackAttempt.get_stats(active_period.id),
        }

    thirty_days_ago = datetime.utcnow() - timedelta(days=30)

    return jsonify({
        'success': True,
        'data': {
            'overview': {
                'total_users': sum(role_counts.values()),
                'pending_users': account_counts.get('pending', 0),
                'total_feedback': sum(status_counts.values()),
                'pending_moderation': status_counts.get('pending', 0),
                'rejected_feedback': status_counts.get('rejected', 0),
            },
            'mula_distribution': _mula_distribution(),
            'current_period_stats': current_period_stats,
            'role_distribution': {role: role_counts.get(role, 0) for role in ROLES},
            'recent_activity': {
                'feedback_last_30_days': Feedback.query.filter(Feedback.created_at >= thirty_days_ago).count(),
                'users_last_30_days': User.query.filter(User.created_at >= thirty_days_ago).count(),
            },
            'attempts': FeedbackAttempt.get_stats(),
        },
    }), 200


# --- 用户管理 ---

@admin_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    status = request.args.get('status', 'pending')
    if status != 'all' and status not in ACCOUNT_STATUSES:
        return jsonify({'success': False, 'error': 'validation_error', 'message': f'Invalid status: {status}'}), 400

    page, limit = parse_pagination(request.args, default_limit=20, max_limit=100)
    query = User.query
    if status != 'all':
        query = query.filter_by(account_status=status)
    pagination = query.order_by(User.created_at.desc()).paginate(page=page, per_page=limit, error_out=False)

    return jsonify({
        'success': True,
        'data': {
            'users': [user.to_dict() for user in pagination.items],
            'pagination': _pagination_dict(pagination, page, limit),
        },
    }), 200


@admin_bp.route('/users/<int:user_id>/approve', methods=['PATCH'])
@admin_required
def approve_user(user_id):
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    if action not in ('approve', 'reject'):
        return jsonify({
            'success': False,
            'error': 'validation_error',
            'message': 'Action must be either approve or reject',
        }), 400

    user = db.get_or_404(User, user_id)
    admin = get_current_user()
    if user.id == admin.id:
        return jsonify({
            'success': False,
            'error': 'forbidden',
            'message': 'You cannot change your own account status',
        }), 403

    if action == 'approve':
        user.account_status = 'approved'
        user.approved_by_id = admin.id
        user.approved_at = datetime.utcnow()
        user.rejection_reason = None
    else:
        reason = data.get('reason')
        if reason is not None and (not isinstance(reason, str) or len(reason) > 500):
            return jsonify({
                'success': False,
                'error': 'validation_error',
                'message': 'Rejection reason cannot exceed 500 characters',
            }), 400
        user.account_status = 'rejected'
        user.rejection_reason = reason or None
    db.session.commit()

    current_app.logger.info(f"管理员 {admin.email} 将用户 {user.email} 标记为 {user.account_status}")
    return jsonify({
        'success': True,
        'message': f'User {user.account_status}',
        'data': user.to_dict(),
    }), 200


# --- 错误统计 ---

@admin_bp.route('/errors', methods=['GET'])
@admin_required
def get_error_stats():
    return jsonify({'success': True, 'data': ErrorHandler.get_error_stats()}), 200


@admin_bp.route('/errors/reset', methods=['POST'])
@admin_required
def reset_error_stats():
    return jsonify(ErrorHandler.reset_stats()), 200
