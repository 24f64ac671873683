"""
错误处理模块

提供全站错误处理功能，包括：
- 针对不同资源路径提供个性化的 404 响应
- MulaBoardError 系列异常（校验失败、存储不可用等）到 JSON 响应的转换
- 错误日志记录和统计，供管理员查看
"""

from flask import jsonify, request, current_app
import re
import time
import threading
from collections import defaultdict, Counter
from datetime import datetime

from mulaboard.errors import MulaBoardError

# 定义URL模式及错误提示
URL_PATTERNS = [
    (re.compile(r'/api/feedback/([^/]+)'), "Feedback not found"),
    (re.compile(r'/api/admin/feedbacks/([^/]+)'), "Feedback not found"),
    (re.compile(r'/api/admin/users/([^/]+)'), "User not found"),
    (re.compile(r'/api/periods/([^/]+)'), "Review period not found"),
    (re.compile(r'/api/quotes/([^/]+)'), "Quote not found"),
    (re.compile(r'/api/users/([^/]+)'), "User not found"),
    (re.compile(r'/api/admin/'), "Admin resource not found"),
]

MAX_RECENT_ERRORS = 100

# 错误计数和统计
_error_lock = threading.Lock()
_error_stats = {
    'last_reset': time.time(),
    'total_count': 0,
    'by_code': defaultdict(int),  # 按状态码统计
    'by_endpoint': defaultdict(int),  # 按端点统计
    'by_error': defaultdict(int),  # 按业务错误类型统计
    'recent_errors': [],  # 最近的错误列表
    'ip_count': Counter()  # IP计数器
}


class ErrorHandler:
    """错误处理器"""

    @staticmethod
    def register_handlers(app):
        """注册所有错误处理器"""

        @app.errorhandler(MulaBoardError)
        def handle_mulaboard_error(e):
            """业务异常直接转换为对应状态码的 JSON"""
            if e.status_code >= 500:
                current_app.logger.error(f"{e.code}: {request.path} - {e.message}")
            ErrorHandler._record_error(e.status_code, request.path, request.method,
                                       request.remote_addr, e.message, error_code=e.code)
            return jsonify(e.to_dict()), e.status_code

        @app.errorhandler(404)
        def handle_not_found(e):
            """处理404错误"""
            path = request.path
            error_msg = "The requested resource does not exist"
            for pattern, msg in URL_PATTERNS:
                if pattern.search(path):
                    error_msg = msg
                    break

            ErrorHandler._record_error(404, path, request.method, request.remote_addr, error_msg)
            return jsonify({
                'success': False,
                'error': 'not_found',
                'message': error_msg,
            }), 404

        @app.errorhandler(500)
        def handle_server_error(e):
            """处理500错误"""
            path = request.path
            current_app.logger.error(f"服务器错误: {path} - {e}", exc_info=True)
            ErrorHandler._record_error(500, path, request.method, request.remote_addr, str(e))
            return jsonify({
                'success': False,
                'error': 'server_error',
                'message': 'An internal error occurred. Please try again later.',
            }), 500

        # 注册其他常见错误代码
        for code in [400, 401, 403, 405, 429]:
            app.register_error_handler(code, ErrorHandler._create_error_handler(code))

    @staticmethod
    def _create_error_handler(status_code):
        """创建特定状态码的错误处理器"""
        def handler(e):
            error_msgs = {
                400: "Invalid request",
                401: "Authentication required",
                403: "Access denied",
                405: "Method not allowed",
                429: "Too many requests. Please slow down.",
            }
            error_msg = error_msgs.get(status_code, "Request failed")

            ErrorHandler._record_error(status_code, request.path, request.method, request.remote_addr, error_msg)
            return jsonify({
                'success': False,
                'error': f'error_{status_code}',
                'message': error_msg,
            }), status_code

        return handler

    @staticmethod
    def _record_error(status_code, path, method, client_ip, error_msg, error_code=None):
        """记录错误统计信息"""
        with _error_lock:
            _error_stats['total_count'] += 1
            _error_stats['by_code'][status_code] += 1
            _error_stats['by_endpoint'][ErrorHandler._simplify_path(path)] += 1
            if error_code:
                _error_stats['by_error'][error_code] += 1
            _error_stats['ip_count'][client_ip] += 1

            _error_stats['recent_errors'].append({
                'timestamp': datetime.now().isoformat(),
                'status_code': status_code,
                'path': path,
                'method': method,
                'message': error_msg,
            })
            # 超过最大数量时移除最早的错误
            if len(_error_stats['recent_errors']) > MAX_RECENT_ERRORS:
                _error_stats['recent_errors'] = _error_stats['recent_errors'][-MAX_RECENT_ERRORS:]

    @staticmethod
    def _simplify_path(path):
        """简化路径，替换ID为占位符"""
        return re.sub(r'/\d+', '/{id}', path)

    @staticmethod
    def get_error_stats():
        """获取错误统计信息"""
        with _error_lock:
            return {
                'total_count': _error_stats['total_count'],
                'by_code': dict(_error_stats['by_code']),
                'by_endpoint': dict(_error_stats['by_endpoint']),
                'by_error': dict(_error_stats['by_error']),
                'recent_errors': _error_stats['recent_errors'][-20:],
                'top_ips': dict(_error_stats['ip_count'].most_common(10)),
                'last_reset': _error_stats['last_reset'],
            }

    @staticmethod
    def reset_stats():
        """重置错误统计"""
        with _error_lock:
            _error_stats['last_reset'] = time.time()
            _error_stats['total_count'] = 0
            _error_stats['by_code'] = defaultdict(int)
            _error_stats['by_endpoint'] = defaultdict(int)
            _error_stats['by_error'] = defaultdict(int)
            _error_stats['recent_errors'] = []
            _error_stats['ip_count'] = Counter()

        return {"success": True, "message": "Error statistics reset"}
