"""
此模块定义了员工个人资料相关的 API 端点。

主要功能:
- 公开员工目录：按姓名/职位/部门搜索、按部门筛选、排序（最新/收到反馈最多/评分最高）、分页。
  只列出已审核且主页启用的员工，统计数据只在本人允许公开时返回。
- 查看单个员工的公开资料（公开）。
- 修改个人资料和个人设置（本人或管理员）。
- 删除用户（仅管理员，不能删除自己），收到的反馈一并删除。
- 公开主页浏览计数（按 slug 原子累加）。

依赖模型: User, Feedback
使用 Flask 蓝图: users_bp (前缀 /api/users)

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import or_

from mulaboard import db, limiter
from mulaboard.extensions import get_record_store
from mulaboard.models import User
from mulaboard.services.rating_aggregator import aggregate_for_user, to_dict as aggregate_to_dict
from mulaboard.utils.auth_utils import admin_required, get_current_user
from mulaboard.utils.validators import validate_profile, validate_settings, parse_pagination

users_bp = Blueprint('users', __name__)

DIRECTORY_SORTS = ('newest', 'most-reviewed', 'highest-rated')


def _visible_users():
    return User.query.filter_by(is_profile_active=True, account_status='approved')


def _public_stats(user, record_store):
    """用户允许公开时返回聚合统计，否则返回 None"""
    if not user.show_aggregate_publicly:
        return None
    result = aggregate_for_user(record_store, user.id)
    stats = aggregate_to_dict(result)
    stats['average_rating'] = result.category_averages['overall']
    return stats


def _self_or_admin(user_id):
    """返回 (当前用户, 错误响应)；只有本人或管理员可以修改"""
    current_user = get_current_user()
    if not current_user:
        return None, (jsonify({'success': False, 'error': 'not_found', 'message': 'User not found'}), 404)
    if current_user.id != user_id and not current_user.is_admin:
        return None, (jsonify({
            'success': False,
            'error': 'forbidden',
            'message': 'You can only update your own profile',
        }), 403)
    return current_user, None


@users_bp.route('/public', methods=['GET'])
def list_public_users():
    """公开员工目录"""
    sort = request.args.get('sort', 'newest')
    if sort not in DIRECTORY_SORTS:
        return jsonify({'success': False, 'error': 'validation_error', 'message': f'Invalid sort: {sort}'}), 400

    page, limit = parse_pagination(request.args, default_limit=12, max_limit=50)
    query = _visible_users()

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            User.full_name.ilike(pattern),
            User.designation.ilike(pattern),
            User.department.ilike(pattern),
        ))
    department = (request.args.get('department') or '').strip()
    if department:
        query = query.filter(User.department == department)

    pagination = query.order_by(User.created_at.desc(), User.id.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )

    record_store = get_record_store()
    users = []
    for user in pagination.items:
        data = user.to_public_dict()
        data['stats'] = _public_stats(user, record_store)
        users.append(data)

    # 统计数据按页计算，排序也只在当前页内进行；未公开统计的员工排在最后
    if sort == 'most-reviewed':
        users.sort(key=lambda item: item['stats']['total'] if item['stats'] else 0, reverse=True)
    elif sort == 'highest-rated':
        users.sort(key=lambda item: item['stats']['average_rating'] if item['stats'] else 0, reverse=True)

    return jsonify({
        'success': True,
        'data': {
            'users': users,
            'pagination': {
                'page': page,
                'limit': limit,
                'total': pagination.total,
                'pages': pagination.pages,
                'has_next': pagination.has_next,
                'has_prev': pagination.has_prev,
            },
        },
    }), 200


@users_bp.route('/<int:user_id>', methods=['GET'])
def get_user_profile(user_id):
    user = _visible_users().filter_by(id=user_id).first()
    if not user:
        return jsonify({'success': False, 'error': 'not_found', 'message': 'User not found'}), 404
    return jsonify({'success': True, 'data': user.to_public_dict()}), 200


@users_bp.route('/<int:user_id>', methods=['PATCH'])
@jwt_required()
def update_user_profile(user_id):
    _, error = _self_or_admin(user_id)
    if error:
        return error

    data = validate_profile(request.get_json(silent=True))
    user = db.get_or_404(User, user_id)
    for field, value in data.items():
        setattr(user, field, value)
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Profile updated successfully',
        'data': user.to_dict(),
    }), 200


@users_bp.route('/<int:user_id>/settings', methods=['PATCH'])
@jwt_required()
def update_user_settings(user_id):
    _, error = _self_or_admin(user_id)
    if error:
        return error

    data = validate_settings(request.get_json(silent=True))
    user = db.get_or_404(User, user_id)
    for field, value in data.items():
        setattr(user, field, value)
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Settings updated successfully',
        'data': {
            'is_profile_active': user.is_profile_active,
            'settings': {
                'email_notifications': user.email_notifications,
                'show_aggregate_publicly': user.show_aggregate_publicly,
            },
        },
    }), 200


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    admin = get_current_user()
    if admin.id == user_id:
        return jsonify({
            'success': False,
            'error': 'validation_error',
            'message': 'Cannot delete your own account',
        }), 400

    user = db.get_or_404(User, user_id)
    feedback_count = user.received_feedbacks.count()
    email = user.email
    db.session.delete(user)
    db.session.commit()

    current_app.logger.info(f"管理员 {admin.email} 删除用户 {email}，连带删除 {feedback_count} 条反馈")
    return jsonify({'success': True, 'message': 'User deleted successfully'}), 200


@users_bp.route('/profile/<slug>/view', methods=['POST'])
@limiter.limit("60 per minute")
def record_profile_view(slug):
    user = _visible_users().filter_by(public_slug=slug).first()
    if not user:
        return jsonify({'success': False, 'error': 'not_found', 'message': 'User not found'}), 404

    # 原子累加，避免并发请求丢失计数
    User.query.filter_by(id=user.id).update(
        {User.profile_views: User.profile_views + 1}, synchronize_session=False
    )
    db.session.commit()
    db.session.refresh(user)

    return jsonify({'success': True, 'data': {'profile_views': user.profile_views}}), 200
