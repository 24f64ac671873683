from datetime import datetime

from mulaboard import db

QUOTE_CATEGORIES = ('landing', 'feedback_form', 'success', 'profile', 'admin', 'error', 'loading')
QUOTE_MOODS = ('funny', 'motivational', 'sarcastic', 'wise')


class Quote(db.Model):
    __tablename__ = 'quotes'

    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(20), nullable=False, index=True)
    mood = db.Column(db.String(20), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, index=True)
    display_count = db.Column(db.Integer, default=0, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'category': self.category,
            'mood': self.mood,
            'is_active': self.is_active,
            'display_count': self.display_count,
            'created_by': self.created_by.to_public_dict() if self.created_by else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Quote {self.id} [{self.category}/{self.mood}]>'
