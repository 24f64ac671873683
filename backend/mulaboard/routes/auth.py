"""
此模块定义了与用户认证相关的 API 端点。

主要功能包括:
- 用户注册 (账号默认待审核，生成唯一的公开主页 slug)。
- 用户登录 (仅审核通过的账号，返回 JWT)。
- 提供 JWT 令牌验证端点。

依赖模型: User
使用 Flask 蓝图: auth_bp (前缀 /api/auth)

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy.exc import IntegrityError

from mulaboard import db, limiter
from mulaboard.models import User
from mulaboard.utils.auth_utils import get_current_user
from mulaboard.utils.slug_generator import generate_unique_slug
from mulaboard.utils.validators import validate_registration

auth_bp = Blueprint('auth', __name__)

ACCOUNT_STATUS_MESSAGES = {
    'pending': 'Your account is pending admin approval.',
    'rejected': 'Your registration has been rejected. Please contact an administrator.',
}


def _create_token(user):
    # identity 必须是字符串
    return create_access_token(
        identity=str(user.id),
        additional_claims={
            'email': user.email,
            'role': user.role,
            'is_admin': user.is_admin,
        }
    )


@auth_bp.route('/register', methods=['POST'])
@limiter.limit("10 per hour")
def register():
    """注册新账号，等待管理员审核"""
    data = validate_registration(request.get_json(silent=True))

    if User.query.filter_by(email=data['email']).first():
        return jsonify({
            'success': False,
            'error': 'email_taken',
            'message': 'An account with this email already exists',
        }), 409

    user = User(
        email=data['email'],
        full_name=data['full_name'],
        designation=data['designation'],
        department=data['department'],
        role='employee',
        account_status='pending',
        public_slug=generate_unique_slug(data['full_name'], User, 'public_slug'),
    )
    user.set_password(data['password'])

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        # 并发注册同一邮箱
        db.session.rollback()
        return jsonify({
            'success': False,
            'error': 'email_taken',
            'message': 'An account with this email already exists',
        }), 409

    current_app.logger.info(f"新用户注册，等待审核: {user.email}")
    return jsonify({
        'success': True,
        'message': 'Registration successful! Your account is pending admin approval.',
        'data': {
            'id': user.id,
            'email': user.email,
            'public_slug': user.public_slug,
            'account_status': user.account_status,
        },
    }), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("20 per minute")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({
            'success': False,
            'error': 'validation_error',
            'message': 'Please provide email and password',
        }), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        current_app.logger.info(f"登录失败: {email}")
        return jsonify({
            'success': False,
            'error': 'invalid_credentials',
            'message': 'Invalid email or password',
        }), 401

    if user.account_status != 'approved':
        return jsonify({
            'success': False,
            'error': f'account_{user.account_status}',
            'message': ACCOUNT_STATUS_MESSAGES.get(user.account_status, 'Account is not active'),
        }), 403

    return jsonify({
        'success': True,
        'data': {
            'token': _create_token(user),
            'user': user.to_dict(),
        },
    }), 200


@auth_bp.route('/verify-token', methods=['POST'])
@jwt_required()
def verify_token():
    """验证 JWT 是否有效，并返回当前用户信息"""
    user = get_current_user()
    if not user:
        return jsonify({'success': False, 'error': 'not_found', 'message': 'User not found'}), 404
    return jsonify({'success': True, 'data': {'valid': True, 'user': user.to_dict()}}), 200
