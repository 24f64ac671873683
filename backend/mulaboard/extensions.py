"""
扩展模块，集中管理计数器存储 (Redis) 和反馈记录存储的获取
"""
from flask import current_app

from mulaboard import db
from mulaboard.services.stores import RedisCounterStore, SQLRecordStore


def init_counter_store(app):
    """根据 REDIS_URL 创建计数器存储；未配置时保存 None"""
    if 'counter_store' in app.extensions:
        return
    redis_url = app.config.get('REDIS_URL')
    if redis_url:
        app.extensions['counter_store'] = RedisCounterStore.from_url(
            redis_url, socket_timeout=app.config.get('REDIS_SOCKET_TIMEOUT', 3)
        )
        app.logger.info(f"计数器存储已初始化: {redis_url}")
    else:
        app.extensions['counter_store'] = None
        app.logger.warning("未配置REDIS_URL，反馈限流计数器已关闭")


def get_counter_store():
    return current_app.extensions.get('counter_store')


def get_record_store():
    return SQLRecordStore(db.session)
