"""
Mula 评分聚合服务

提供以下功能：
- 单条反馈的综合得分：五个维度评分的等权平均（保留两位小数）
- 综合得分到 Mula 档位的映射 (golden_mula / fresh_carrot / rotten_tomato)
- 多条反馈的维度平均分、档位计数、档位百分比和主导档位

纯计算模块，不持有任何状态；aggregate_for_user 只做一次记录查询。
"""
import logging
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from mulaboard.errors import InvariantViolation, StoreUnavailable

logger = logging.getLogger(__name__)

# 五个固定评分维度，顺序即展示顺序
RATING_CATEGORIES = (
    'work_quality',
    'communication',
    'team_behavior',
    'accountability',
    'overall',
)

MIN_SCORE = 1
MAX_SCORE = 5

GOLDEN_MULA = 'golden_mula'
FRESH_CARROT = 'fresh_carrot'
ROTTEN_TOMATO = 'rotten_tomato'

# 并列时的优先级：金 > 胡萝卜 > 番茄
BUCKET_PRECEDENCE = (GOLDEN_MULA, FRESH_CARROT, ROTTEN_TOMATO)

# 档位下限（闭区间），从高到低依次匹配
BUCKET_THRESHOLDS = (
    (GOLDEN_MULA, Decimal('4.5')),
    (FRESH_CARROT, Decimal('3.0')),
    (ROTTEN_TOMATO, Decimal('1.0')),
)

MULA_RATINGS = {
    GOLDEN_MULA: {
        'label': 'Golden Mula',
        'emoji': '🌿✨',
        'description': "Outstanding performance! You're a star!",
        'min_score': 4.5,
        'max_score': 5.0,
    },
    FRESH_CARROT: {
        'label': 'Fresh Carrot',
        'emoji': '🥕',
        'description': 'Good work! Keep it up!',
        'min_score': 3.0,
        'max_score': 4.49,
    },
    ROTTEN_TOMATO: {
        'label': 'Rotten Tomato',
        'emoji': '🍅',
        'description': "Room for improvement. Let's work on this!",
        'min_score': 1.0,
        'max_score': 2.99,
    },
}

AggregateResult = namedtuple(
    'AggregateResult',
    ['category_averages', 'dominant_bucket', 'bucket_counts', 'bucket_percentages', 'total'],
)


def _round_half_up(value, places='0.01'):
    return Decimal(value).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def _validated_scores(ratings):
    """按固定维度顺序取出评分；缺项或越界说明上游校验有漏洞"""
    if not isinstance(ratings, dict):
        raise InvariantViolation(f'ratings must be a mapping, got {type(ratings).__name__}')
    scores = []
    for category in RATING_CATEGORIES:
        score = ratings.get(category)
        # bool 是 int 的子类，需要单独排除
        if isinstance(score, bool) or not isinstance(score, int):
            raise InvariantViolation(f'{category} score must be an integer, got {score!r}')
        if not MIN_SCORE <= score <= MAX_SCORE:
            raise InvariantViolation(f'{category} score {score} is outside [{MIN_SCORE}, {MAX_SCORE}]')
        scores.append(score)
    return scores


def overall_score(ratings):
    """单条反馈的综合得分：五个维度的等权平均，四舍五入保留两位小数"""
    scores = _validated_scores(ratings)
    return float(_round_half_up(Decimal(sum(scores)) / len(scores)))


def classify(score):
    """
    将综合得分映射到 Mula 档位。

    [4.5, 5.0] -> golden_mula, [3.0, 4.5) -> fresh_carrot, [1.0, 3.0) -> rotten_tomato
    """
    value = Decimal(str(score))
    if not Decimal(MIN_SCORE) <= value <= Decimal(MAX_SCORE):
        raise InvariantViolation(f'score {score} is outside [{MIN_SCORE}, {MAX_SCORE}]')
    for bucket, lower_bound in BUCKET_THRESHOLDS:
        if value >= lower_bound:
            return bucket
    # 上面的区间已覆盖 [1.0, 5.0]
    raise InvariantViolation(f'score {score} did not match any bucket')


def mula_rating_for(ratings):
    return classify(overall_score(ratings))


def empty_aggregate():
    return AggregateResult(
        category_averages={category: 0 for category in RATING_CATEGORIES},
        dominant_bucket=None,
        bucket_counts={bucket: 0 for bucket in BUCKET_PRECEDENCE},
        bucket_percentages={bucket: 0 for bucket in BUCKET_PRECEDENCE},
        total=0,
    )


def dominant_bucket(bucket_counts):
    """计数严格最高的档位；并列按 BUCKET_PRECEDENCE 取靠前者，全为 0 时返回 None"""
    best = None
    for bucket in BUCKET_PRECEDENCE:
        count = bucket_counts.get(bucket, 0)
        if count > 0 and (best is None or count > bucket_counts[best]):
            best = bucket
    return best


def bucket_percentages(bucket_counts, total):
    # 各档位独立取整，总和不一定等于 100
    if total <= 0:
        return {bucket: 0 for bucket in BUCKET_PRECEDENCE}
    return {
        bucket: int(_round_half_up(Decimal(bucket_counts.get(bucket, 0)) * 100 / total, '1'))
        for bucket in BUCKET_PRECEDENCE
    }


def aggregate(ratings_seq):
    """
    聚合多条反馈的维度评分。

    Args:
        ratings_seq: 每条反馈的 {维度: 1-5 整数} 映射组成的序列

    Returns:
        AggregateResult

    Raises:
        InvariantViolation: 任一评分缺失、非整数或越界，整个聚合失败
    """
    ratings_seq = list(ratings_seq)
    if not ratings_seq:
        return empty_aggregate()

    sums = {category: 0 for category in RATING_CATEGORIES}
    counts = {bucket: 0 for bucket in BUCKET_PRECEDENCE}
    for ratings in ratings_seq:
        scores = _validated_scores(ratings)
        for category, score in zip(RATING_CATEGORIES, scores):
            sums[category] += score
        counts[mula_rating_for(ratings)] += 1

    total = len(ratings_seq)
    averages = {
        category: float(_round_half_up(Decimal(sums[category]) / total))
        for category in RATING_CATEGORIES
    }
    return AggregateResult(
        category_averages=averages,
        dominant_bucket=dominant_bucket(counts),
        bucket_counts=counts,
        bucket_percentages=bucket_percentages(counts, total),
        total=total,
    )


def aggregate_for_user(record_store, target_user_id, review_period_id=None, approved_only=True):
    """读取某个用户（可选某个评审周期）的反馈并聚合；存储不可用时返回空结果"""
    criteria = {'target_user_id': target_user_id}
    if review_period_id is not None:
        criteria['review_period_id'] = review_period_id
    if approved_only:
        criteria['moderation_status'] = 'approved'

    try:
        records = record_store.find(criteria)
    except StoreUnavailable as e:
        logger.error(f"读取用户 {target_user_id} 的反馈失败，返回空聚合: {e}")
        return empty_aggregate()

    return aggregate(record.ratings for record in records)


def to_dict(result):
    return {
        'category_averages': result.category_averages,
        'dominant': result.dominant_bucket,
        'counts': result.bucket_counts,
        'percentage': result.bucket_percentages,
        'total': result.total,
    }
