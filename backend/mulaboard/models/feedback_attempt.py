# backend/mulaboard/models/feedback_attempt.py
"""
定义反馈提交尝试模型 (FeedbackAttempt)。
记录每一次匿名提交的结果（completed / blocked）及拦截原因，供后台统计使用。

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from datetime import datetime

from sqlalchemy import func

from mulaboard import db

ATTEMPT_STATUSES = ('completed', 'blocked')


class FeedbackAttempt(db.Model):
    __tablename__ = 'feedback_attempts'

    id = db.Column(db.Integer, primary_key=True)
    fingerprint = db.Column(db.String(128), nullable=False, index=True)
    ip_hash = db.Column(db.String(64), nullable=False, index=True)
    # 目标用户和周期可能不存在（被拦截的请求），因此不加外键
    target_user_id = db.Column(db.String(64), nullable=False, index=True)
    review_period_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, index=True)
    block_reason = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    @classmethod
    def get_stats(cls, review_period_id=None):
        query = db.session.query(cls.status, func.count(cls.id))
        if review_period_id is not None:
            query = query.filter(cls.review_period_id == str(review_period_id))
        counts = dict(query.group_by(cls.status).all())
        return {
            'total': sum(counts.values()),
            'completed': counts.get('completed', 0),
            'blocked': counts.get('blocked', 0),
        }

    def __repr__(self):
        return f'<FeedbackAttempt {self.status} target={self.target_user_id}>'
