"""
模型包初始化文件。

导入所有模型类，使其可以通过 mulaboard.models.ModelName 的方式被访问。

注意: 如果新增、删除或修改功能，必须在这开头的注释中同步修改，如发现功能与注释描述不同，也可以在确定后修改。
"""
from .user import User
from .review_period import ReviewPeriod
from .feedback import Feedback
from .feedback_attempt import FeedbackAttempt
from .quote import Quote

__all__ = [
    'User',
    'ReviewPeriod',
    'Feedback',
    'FeedbackAttempt',
    'Quote',
]
