"""
防刷检查依赖的两个外部存储的适配层。

- RedisCounterStore: 基于 Redis INCR/EXPIRE 事务管道的计数器，键自动过期
- SQLRecordStore: 基于 SQLAlchemy 的反馈记录查询/写入

两者都把底层连接错误统一转换成 StoreUnavailable，由调用方决定放行还是拒绝。
"""
import logging

import redis
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mulaboard.errors import DuplicateSubmission, InvariantViolation, StoreUnavailable, ValidationError
from mulaboard.models import Feedback

logger = logging.getLogger(__name__)


class RedisCounterStore:
    """Redis 计数器，值为非负整数"""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, redis_url, socket_timeout=3):
        client = redis.from_url(
            redis_url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def increment(self, key, window_seconds):
        """
        在一个事务管道里执行 INCR 和 EXPIRE NX，返回递增后的计数。

        EXPIRE NX 只在键还没有过期时间时设置（Redis >= 7.0），
        计数和过期时间要么一起写入，要么都不写入，键不会丢失过期时间。
        """
        pipe = self.client.pipeline(True)
        try:
            pipe.incr(key)
            pipe.expire(key, window_seconds, nx=True)
            count, _ = pipe.execute()
        except redis.RedisError as e:
            raise StoreUnavailable(f'Redis INCR/EXPIRE {key} 失败: {e}') from e
        return int(count)

    def get(self, key):
        try:
            value = self.client.get(key)
        except redis.RedisError as e:
            raise StoreUnavailable(f'Redis GET {key} 失败: {e}') from e
        if value is None:
            return None
        return int(value)


class SQLRecordStore:
    """反馈记录存储，过滤条件为字段相等"""

    FILTERABLE_FIELDS = {
        'id',
        'target_user_id',
        'review_period_id',
        'submitter_fingerprint',
        'submitter_ip',
        'mula_rating',
        'moderation_status',
        'visibility',
    }
    ID_FIELDS = {'id', 'target_user_id', 'review_period_id'}

    def __init__(self, session):
        self.session = session

    def _build_query(self, criteria):
        unknown = set(criteria) - self.FILTERABLE_FIELDS
        if unknown:
            raise ValidationError(f'不支持的过滤字段: {", ".join(sorted(unknown))}')

        normalized = {}
        for field, value in criteria.items():
            if field in self.ID_FIELDS:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ValidationError(f'{field} 必须是有效的ID: {value!r}')
            normalized[field] = value
        return self.session.query(Feedback).filter_by(**normalized)

    def find_one(self, criteria):
        query = self._build_query(criteria)
        try:
            return query.first()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreUnavailable(f'查询反馈记录失败: {e}') from e

    def find(self, criteria):
        query = self._build_query(criteria).order_by(Feedback.created_at.desc())
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreUnavailable(f'查询反馈记录失败: {e}') from e

    def count(self, criteria):
        query = self._build_query(criteria)
        try:
            return query.count()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreUnavailable(f'统计反馈记录失败: {e}') from e

    def create(self, record):
        """写入一条反馈；mula_rating 由模型在插入前根据 ratings 计算"""
        record = dict(record)
        record.pop('mula_rating', None)
        feedback = Feedback(**record)
        try:
            self.session.add(feedback)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.info(f"重复提交被唯一约束拦截: target={record.get('target_user_id')}, period={record.get('review_period_id')}")
            raise DuplicateSubmission(
                'You have already submitted feedback for this person in this review period.'
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreUnavailable(f'写入反馈记录失败: {e}') from e
        except InvariantViolation:
            self.session.rollback()
            raise
        return feedback
