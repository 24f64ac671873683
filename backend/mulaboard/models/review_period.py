# backend/mulaboard/models/review_period.py
"""
定义评审周期模型 (ReviewPeriod)。
一个评审周期对应一段时间窗口（如 "Annual Review 2025"），反馈按周期归组和聚合。
同一时间最多只有一个激活的周期，activate() 负责先关闭其他周期。

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
import math
from datetime import datetime

from mulaboard import db


class ReviewPeriod(db.Model):
    __tablename__ = 'review_periods'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(50), unique=True, nullable=False, index=True)
    start_date = db.Column(db.DateTime, nullable=False, index=True)
    end_date = db.Column(db.DateTime, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=False, index=True)

    theme_name = db.Column(db.String(100), nullable=False, default='The Mula Season')
    theme_emoji = db.Column(db.String(10), nullable=False, default='🌿')
    theme_background_color = db.Column(db.String(7), nullable=True, default='#f0fdf4')

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get_active(cls):
        return cls.query.filter_by(is_active=True).first()

    def activate(self):
        """关闭其他所有周期后激活当前周期（不提交事务）"""
        query = ReviewPeriod.query
        if self.id is not None:
            query = query.filter(ReviewPeriod.id != self.id)
        query.update({'is_active': False}, synchronize_session=False)
        self.is_active = True

    @property
    def is_currently_active(self):
        now = datetime.utcnow()
        return bool(self.is_active and self.start_date <= now <= self.end_date)

    @property
    def duration_days(self):
        return math.ceil(abs((self.end_date - self.start_date).total_seconds()) / 86400)

    @property
    def days_remaining(self):
        now = datetime.utcnow()
        if not self.is_active or now > self.end_date:
            return 0
        return math.ceil((self.end_date - now).total_seconds() / 86400)

    def to_brief_dict(self):
        return {'id': self.id, 'name': self.name, 'slug': self.slug}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'is_active': self.is_active,
            'is_currently_active': self.is_currently_active,
            'duration_days': self.duration_days,
            'days_remaining': self.days_remaining,
            'theme': {
                'name': self.theme_name,
                'primary_emoji': self.theme_emoji,
                'background_color': self.theme_background_color,
            },
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<ReviewPeriod {self.slug}>'
