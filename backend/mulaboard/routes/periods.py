"""
此模块定义了评审周期的 API 端点。

主要功能:
- 列出评审周期（可只看激活的周期），所有人可访问。
- 管理员创建、修改、删除评审周期；激活一个周期会关闭其他周期。

依赖模型: ReviewPeriod
使用 Flask 蓝图: periods_bp (前缀 /api/periods)

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError

from mulaboard import db
from mulaboard.models import ReviewPeriod
from mulaboard.utils.auth_utils import admin_required
from mulaboard.utils.validators import validate_period

periods_bp = Blueprint('periods', __name__)


def _slug_conflict():
    return jsonify({
        'success': False,
        'error': 'slug_taken',
        'message': 'A review period with this slug already exists',
    }), 409


def _slug_taken(slug, exclude_id=None):
    query = ReviewPeriod.query.filter_by(slug=slug)
    if exclude_id is not None:
        query = query.filter(ReviewPeriod.id != exclude_id)
    return query.first() is not None


@periods_bp.route('', methods=['GET'])
def list_periods():
    query = ReviewPeriod.query
    if request.args.get('active', '').lower() == 'true':
        query = query.filter_by(is_active=True)
    periods = query.order_by(ReviewPeriod.start_date.desc()).all()
    return jsonify({'success': True, 'data': [period.to_dict() for period in periods]}), 200


@periods_bp.route('', methods=['POST'])
@admin_required
def create_period():
    data = validate_period(request.get_json(silent=True))
    if _slug_taken(data['slug']):
        return _slug_conflict()

    is_active = data.pop('is_active', False)
    period = ReviewPeriod(**data)
    try:
        db.session.add(period)
        db.session.flush()
        if is_active:
            period.activate()
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _slug_conflict()

    current_app.logger.info(f"创建评审周期: {period.slug} (active={period.is_active})")
    return jsonify({'success': True, 'data': period.to_dict()}), 201


@periods_bp.route('/<int:period_id>', methods=['PATCH'])
@admin_required
def update_period(period_id):
    period = db.get_or_404(ReviewPeriod, period_id)
    data = validate_period(request.get_json(silent=True), partial=True)

    if 'slug' in data and _slug_taken(data['slug'], exclude_id=period.id):
        return _slug_conflict()

    # 只改了其中一个日期时，和已有的日期比较
    start_date = data.get('start_date', period.start_date)
    end_date = data.get('end_date', period.end_date)
    if end_date <= start_date:
        return jsonify({
            'success': False,
            'error': 'validation_error',
            'message': 'End date must be after start date',
        }), 400

    is_active = data.pop('is_active', None)
    for field, value in data.items():
        setattr(period, field, value)
    if is_active is True:
        period.activate()
    elif is_active is False:
        period.is_active = False

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _slug_conflict()

    current_app.logger.info(f"更新评审周期: {period.slug}")
    return jsonify({'success': True, 'data': period.to_dict()}), 200


@periods_bp.route('/<int:period_id>', methods=['DELETE'])
@admin_required
def delete_period(period_id):
    period = db.get_or_404(ReviewPeriod, period_id)
    feedback_count = period.feedbacks.count()
    db.session.delete(period)
    db.session.commit()
    current_app.logger.info(f"删除评审周期 {period_id}，连带删除 {feedback_count} 条反馈")
    return jsonify({'success': True, 'message': 'Review period deleted'}), 200
