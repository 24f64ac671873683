from functools import wraps
from flask import jsonify
from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from mulaboard import db


def get_current_user():
    """根据 JWT identity 加载当前用户，未登录或用户不存在时返回 None"""
    from mulaboard.models import User
    identity = get_jwt_identity()
    if identity is None:
        return None
    try:
        return db.session.get(User, int(identity))
    except (TypeError, ValueError):
        return None


def admin_required(fn):
    """
    装饰器：确保只有管理员才能访问该端点。

    检查 JWT 中的 'role' 声明是否为 'admin'，同时确认数据库中该用户仍是管理员。
    已包含 jwt_required()，路由上无需再叠加。
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        claims = get_jwt()
        if claims.get('role') != 'admin':
            return jsonify({'success': False, 'error': 'Unauthorized. Admin access required.'}), 403

        # 角色可能在令牌签发后被修改
        user = get_current_user()
        if not user or not user.is_admin:
            return jsonify({'success': False, 'error': 'Unauthorized. Admin access required.'}), 403
        return fn(*args, **kwargs)

    # 手动应用 jwt_required 以确保在检查权限前用户已认证
    return jwt_required()(wrapper)
