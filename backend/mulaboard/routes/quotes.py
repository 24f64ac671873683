"""
此模块定义了趣味语录 (Quote) 的 API 端点。

主要功能:
- 按类别随机返回一条启用的语录，并累加展示次数（公开）。
- 管理员按类别/心情/状态筛选语录列表 (?admin=true)。
- 管理员创建、修改、删除语录。

依赖模型: Quote
使用 Flask 蓝图: quotes_bp (前缀 /api/quotes)

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import verify_jwt_in_request, get_jwt
from sqlalchemy import func

from mulaboard import db
from mulaboard.models import Quote
from mulaboard.models.quote import QUOTE_CATEGORIES, QUOTE_MOODS
from mulaboard.utils.auth_utils import admin_required, get_current_user
from mulaboard.utils.validators import validate_quote

quotes_bp = Blueprint('quotes', __name__)


@quotes_bp.route('', methods=['GET'])
def get_quotes():
    if request.args.get('admin', '').lower() == 'true':
        return _admin_list_quotes()

    category = request.args.get('category', 'landing')
    if category not in QUOTE_CATEGORIES:
        return jsonify({'success': False, 'error': 'validation_error', 'message': f'Invalid category: {category}'}), 400

    query = Quote.query.filter_by(category=category, is_active=True)
    mood = request.args.get('mood')
    if mood:
        query = query.filter_by(mood=mood)
    quote = query.order_by(func.random()).first()
    if not quote:
        return jsonify({'success': False, 'error': 'not_found', 'message': 'No quotes found for this category'}), 404

    # 原子累加，避免并发请求丢失计数
    Quote.query.filter_by(id=quote.id).update(
        {Quote.display_count: Quote.display_count + 1}, synchronize_session=False
    )
    db.session.commit()
    db.session.refresh(quote)

    return jsonify({'success': True, 'data': quote.to_dict()}), 200


def _admin_list_quotes():
    # 与公开接口共用路径，这里手动校验管理员身份
    verify_jwt_in_request()
    user = get_current_user()
    if get_jwt().get('role') != 'admin' or not user or not user.is_admin:
        return jsonify({'success': False, 'error': 'Unauthorized. Admin access required.'}), 403

    query = Quote.query
    category = request.args.get('category')
    if category:
        query = query.filter_by(category=category)
    mood = request.args.get('mood')
    if mood:
        query = query.filter_by(mood=mood)
    active = request.args.get('active')
    if active in ('true', 'false'):
        query = query.filter_by(is_active=(active == 'true'))

    quotes = query.order_by(Quote.created_at.desc()).all()
    return jsonify({'success': True, 'data': [quote.to_dict() for quote in quotes]}), 200


@quotes_bp.route('', methods=['POST'])
@admin_required
def create_quote():
    data = validate_quote(request.get_json(silent=True), QUOTE_CATEGORIES, QUOTE_MOODS)
    quote = Quote(created_by_id=get_current_user().id, **data)
    db.session.add(quote)
    db.session.commit()
    current_app.logger.info(f"创建语录 {quote.id} [{quote.category}/{quote.mood}]")
    return jsonify({'success': True, 'data': quote.to_dict()}), 201


@quotes_bp.route('/<int:quote_id>', methods=['PATCH'])
@admin_required
def update_quote(quote_id):
    quote = db.get_or_404(Quote, quote_id)
    data = validate_quote(request.get_json(silent=True), QUOTE_CATEGORIES, QUOTE_MOODS, partial=True)
    for field, value in data.items():
        setattr(quote, field, value)
    db.session.commit()
    return jsonify({'success': True, 'data': quote.to_dict()}), 200


@quotes_bp.route('/<int:quote_id>', methods=['DELETE'])
@admin_required
def delete_quote(quote_id):
    quote = db.get_or_404(Quote, quote_id)
    db.session.delete(quote)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Quote deleted'}), 200
