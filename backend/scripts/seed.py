"""
初始化数据脚本：创建第一个管理员账号和默认语录。

使用方法 (在 backend 目录下):
    python -m scripts.seed

管理员账号从环境变量 ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME 读取。
已存在的管理员和语录不会重复创建。
"""
import logging
import os
from datetime import datetime

from mulaboard import create_app, db
from mulaboard.models import User, Quote
from mulaboard.utils.slug_generator import generate_unique_slug

logger = logging.getLogger('mulaboard.seed')

DEFAULT_QUOTES = [
    ("Your feedback won't hurt... much. 🌿", 'landing', 'funny'),
    ("We promise we won't cry... publicly.", 'landing', 'sarcastic'),
    ("Feedback is the breakfast of champions. Serve it hot!", 'landing', 'motivational'),
    ("Great feedback leads to great growth.", 'landing', 'wise'),
    ("Remember: Be honest, but be kind. We're all humans here... probably.", 'feedback_form', 'funny'),
    ("Take your time. Good feedback is like good tea - it can't be rushed.", 'feedback_form', 'motivational'),
    ("Pro tip: Writing feedback while angry is like grocery shopping while hungry.", 'feedback_form', 'sarcastic'),
    ("Feedback submitted! May the Mula be with you! 🌿", 'success', 'funny'),
    ("Mission accomplished! Your honesty is appreciated.", 'success', 'motivational'),
    ("Feedback received! Together we grow stronger.", 'success', 'wise'),
]


def seed_admin(email, password, full_name='System Administrator'):
    """创建已审核的管理员账号；邮箱已存在时直接返回已有用户"""
    existing = User.query.filter_by(email=email.lower()).first()
    if existing:
        logger.warning(f"邮箱 {email} 已存在 (role={existing.role})，跳过创建")
        return existing

    admin = User(
        email=email.lower(),
        full_name=full_name,
        designation='System Administrator',
        department='Administration',
        role='admin',
        account_status='approved',
        approved_at=datetime.utcnow(),
        public_slug=generate_unique_slug('admin', User, 'public_slug'),
    )
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    logger.info(f"管理员账号已创建: {admin.email} (/{admin.public_slug})")
    return admin


def seed_quotes(quotes=DEFAULT_QUOTES, created_by=None):
    """写入文本尚不存在的语录，返回新增数量"""
    existing = {text for (text,) in db.session.query(Quote.text).all()}
    created = 0
    for text, category, mood in quotes:
        if text in existing:
            continue
        db.session.add(Quote(
            text=text,
            category=category,
            mood=mood,
            created_by_id=created_by.id if created_by else None,
        ))
        created += 1
    db.session.commit()
    logger.info(f"新增语录 {created} 条")
    return created


def main():
    app = create_app()
    with app.app_context():
        admin = seed_admin(
            os.getenv('ADMIN_EMAIL', 'admin@mulaboard.com'),
            os.getenv('ADMIN_PASSWORD', 'Admin@123456'),
            os.getenv('ADMIN_NAME', 'System Administrator'),
        )
        seed_quotes(created_by=admin)
        logger.warning("请在首次登录后修改管理员密码")


if __name__ == '__main__':
    main()
