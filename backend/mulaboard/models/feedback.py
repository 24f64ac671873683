# backend/mulaboard/models/feedback.py
"""
定义匿名反馈模型 (Feedback)。
存储提交人对目标用户在某个评审周期内的五维评分、文字反馈、Mula 档位、审核状态和可见性。

- mula_rating 在插入前由评分重新计算，不接受外部单独设置
- (submitter_fingerprint, target_user_id, review_period_id) 唯一，作为重复提交的最终防线
- submitter_ip 只保存 IP 的 SHA-256 摘要

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from datetime import datetime

from sqlalchemy import UniqueConstraint, event

from mulaboard import db
from mulaboard.services.rating_aggregator import mula_rating_for, overall_score

MODERATION_STATUSES = ('pending', 'approved', 'rejected')
VISIBILITIES = ('private', 'public')
EMPLOYEE_REACTIONS = ('thanks', 'noted', 'ouch', 'fair_enough')


class Feedback(db.Model):
    __tablename__ = 'feedbacks'

    id = db.Column(db.Integer, primary_key=True)
    target_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    review_period_id = db.Column(db.Integer, db.ForeignKey('review_periods.id', ondelete='CASCADE'), nullable=False, index=True)

    # 提交人标识，仅用于防刷，不对外展示
    submitter_fingerprint = db.Column(db.String(128), nullable=False, index=True)
    submitter_ip = db.Column(db.String(64), nullable=False, index=True)

    ratings = db.Column(db.JSON, nullable=False)  # {维度: 1-5}
    strengths = db.Column(db.Text, nullable=False)
    improvements = db.Column(db.Text, nullable=False)

    mula_rating = db.Column(db.String(20), nullable=False, index=True)
    visibility = db.Column(db.String(10), nullable=False, default='private', index=True)

    moderation_status = db.Column(db.String(10), nullable=False, default='pending', index=True)
    moderation_note = db.Column(db.String(500), nullable=True)
    moderated_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    moderated_at = db.Column(db.DateTime, nullable=True)

    employee_reaction = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('submitter_fingerprint', 'target_user_id', 'review_period_id',
                         name='uq_feedback_fingerprint_target_period'),
    )

    target_user = db.relationship('User', foreign_keys=[target_user_id],
                                  backref=db.backref('received_feedbacks', lazy='dynamic', cascade='all, delete-orphan'))
    review_period = db.relationship('ReviewPeriod',
                                    backref=db.backref('feedbacks', lazy='dynamic', cascade='all, delete-orphan'))
    moderated_by = db.relationship('User', foreign_keys=[moderated_by_id])

    def average_score(self):
        return overall_score(self.ratings)

    def to_dict(self):
        # 不返回提交人指纹和 IP 摘要
        return {
            'id': self.id,
            'target_user_id': self.target_user_id,
            'review_period_id': self.review_period_id,
            'review_period': self.review_period.to_brief_dict() if self.review_period else None,
            'ratings': self.ratings,
            'strengths': self.strengths,
            'improvements': self.improvements,
            'mula_rating': self.mula_rating,
            'visibility': self.visibility,
            'moderation': {
                'status': self.moderation_status,
                'note': self.moderation_note,
                'moderated_by_id': self.moderated_by_id,
                'moderated_at': self.moderated_at.isoformat() if self.moderated_at else None,
            },
            'employee_reaction': self.employee_reaction,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_public_dict(self):
        """公开主页展示用，不含审核信息"""
        return {
            'id': self.id,
            'ratings': self.ratings,
            'strengths': self.strengths,
            'improvements': self.improvements,
            'mula_rating': self.mula_rating,
            'employee_reaction': self.employee_reaction,
            'review_period': self.review_period.to_brief_dict() if self.review_period else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Feedback for User {self.target_user_id} - {self.mula_rating}>'


@event.listens_for(Feedback, 'before_insert')
def _derive_mula_rating(mapper, connection, target):
    # 档位只由评分决定
    target.mula_rating = mula_rating_for(target.ratings)
