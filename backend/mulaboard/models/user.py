# backend/mulaboard/models/user.py
"""
定义用户模型 (User)。
用于存储员工账号信息，包括邮箱、密码哈希、姓名、职位、部门、角色、账号审核状态、公开主页 slug、主页浏览次数、头像和个人设置。

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash

from mulaboard import db

ROLES = ('employee', 'admin')
ACCOUNT_STATUSES = ('pending', 'approved', 'rejected')


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(100), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='employee', index=True)

    # 账号审核
    account_status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    # 个人资料
    full_name = db.Column(db.String(100), nullable=False)
    designation = db.Column(db.String(100), nullable=False)
    department = db.Column(db.String(100), nullable=False, index=True)
    profile_image = db.Column(db.String(255), nullable=True)
    bio = db.Column(db.String(200), nullable=True)

    # 公开主页
    public_slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    is_profile_active = db.Column(db.Boolean, default=True, index=True)
    profile_views = db.Column(db.Integer, nullable=False, default=0)

    # 设置
    email_notifications = db.Column(db.Boolean, default=True)
    show_aggregate_publicly = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    approved_by = db.relationship('User', remote_side=[id])

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'account_status': self.account_status,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'rejection_reason': self.rejection_reason,
            'full_name': self.full_name,
            'designation': self.designation,
            'department': self.department,
            'profile_image': self.profile_image,
            'bio': self.bio,
            'public_slug': self.public_slug,
            'is_profile_active': self.is_profile_active,
            'profile_views': self.profile_views or 0,
            'settings': {
                'email_notifications': self.email_notifications,
                'show_aggregate_publicly': self.show_aggregate_publicly,
            },
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_public_dict(self):
        """返回用户的公开信息字典，不包含敏感数据"""
        return {
            'id': self.id,
            'full_name': self.full_name,
            'designation': self.designation,
            'department': self.department,
            'profile_image': self.profile_image,
            'bio': self.bio,
            'public_slug': self.public_slug,
        }

    def __repr__(self):
        return f'<User {self.email}>'
