"""
MulaBoard 的异常类型。

- ValidationError: 输入格式不合法，在访问任何存储之前即被拒绝
- StoreUnavailable: 与 Redis 计数器或数据库通信失败（网络/超时）
- InvariantViolation: 评分越界等上游校验遗漏，聚合整体失败而不是静默截断
- DuplicateSubmission: 唯一约束拦截的重复反馈
"""


class MulaBoardError(Exception):
    status_code = 500
    code = 'error'

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {
            'success': False,
            'error': self.code,
            'message': self.message,
        }
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(MulaBoardError):
    status_code = 400
    code = 'validation_error'


class StoreUnavailable(MulaBoardError):
    status_code = 503
    code = 'store_unavailable'


class InvariantViolation(MulaBoardError):
    status_code = 500
    code = 'invariant_violation'


class DuplicateSubmission(MulaBoardError):
    status_code = 409
    code = 'already_submitted'
