from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
import logging

from .utils.error_handler import ErrorHandler

from mulaboard.config import (
    SECRET_KEY, SQLALCHEMY_TRACK_MODIFICATIONS, SQLALCHEMY_ECHO, JWT_SECRET_KEY,
    JWT_TOKEN_LOCATION, JWT_HEADER_NAME, JWT_HEADER_TYPE, JWT_ACCESS_TOKEN_EXPIRES,
    get_database_uri, get_engine_options,
    CORS_ORIGINS,
    REDIS_URL, REDIS_SOCKET_TIMEOUT,
    FEEDBACK_FINGERPRINT_LIMIT, FEEDBACK_IP_LIMIT, FEEDBACK_RATE_WINDOW, FEEDBACK_MIN_FORM_SECONDS,
    RATELIMIT_DEFAULT, RATELIMIT_SUBMIT,
    LOG_DIR, APP_URL,
)

# 初始化扩展
db = SQLAlchemy()
jwt = JWTManager()

# 存储地址由 app.config['RATELIMIT_STORAGE_URI'] 决定
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[limit.strip() for limit in RATELIMIT_DEFAULT.split(';') if limit.strip()],
)

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def _configure_logging(app):
    # app.logger 即 'mulaboard' logger，服务层的 logging.getLogger(__name__) 会传递到这里
    app.logger.setLevel(logging.INFO)
    if getattr(app.logger, '_mulaboard_configured', False):
        return
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    app.logger.addHandler(console_handler)

    log_dir = app.config.get('LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, 'mulaboard.log'))
        file_handler.setFormatter(formatter)
        app.logger.addHandler(file_handler)
    app.logger._mulaboard_configured = True


def create_app(config_object=None):
    """
    创建 Flask 应用。

    Args:
        config_object: 可选的配置映射，覆盖 mulaboard.config 中的默认值（测试时使用）
    """
    app = Flask(__name__, instance_relative_config=False)

    database_uri = get_database_uri()
    app.config.from_mapping(
        SECRET_KEY=SECRET_KEY,
        SQLALCHEMY_DATABASE_URI=database_uri,
        SQLALCHEMY_ENGINE_OPTIONS=get_engine_options(database_uri),
        SQLALCHEMY_TRACK_MODIFICATIONS=SQLALCHEMY_TRACK_MODIFICATIONS,
        SQLALCHEMY_ECHO=SQLALCHEMY_ECHO,
        JWT_SECRET_KEY=JWT_SECRET_KEY,
        JWT_TOKEN_LOCATION=JWT_TOKEN_LOCATION,
        JWT_HEADER_NAME=JWT_HEADER_NAME,
        JWT_HEADER_TYPE=JWT_HEADER_TYPE,
        JWT_ACCESS_TOKEN_EXPIRES=JWT_ACCESS_TOKEN_EXPIRES,
        REDIS_URL=REDIS_URL,
        REDIS_SOCKET_TIMEOUT=REDIS_SOCKET_TIMEOUT,
        RATELIMIT_STORAGE_URI=REDIS_URL or 'memory://',
        RATELIMIT_SUBMIT=RATELIMIT_SUBMIT,
        FEEDBACK_FINGERPRINT_LIMIT=FEEDBACK_FINGERPRINT_LIMIT,
        FEEDBACK_IP_LIMIT=FEEDBACK_IP_LIMIT,
        FEEDBACK_RATE_WINDOW=FEEDBACK_RATE_WINDOW,
        FEEDBACK_MIN_FORM_SECONDS=FEEDBACK_MIN_FORM_SECONDS,
        LOG_DIR=LOG_DIR,
        APP_URL=APP_URL,
    )
    if config_object:
        app.config.from_mapping(config_object)

    # 初始化扩展
    db.init_app(app)
    jwt.init_app(app)
    limiter.init_app(app)
    CORS(app,
         origins=CORS_ORIGINS,
         methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization"],
         supports_credentials=True)

    _configure_logging(app)

    # 计数器存储：未配置 REDIS_URL 时为 None，资格检查会放行限流
    from mulaboard.extensions import init_counter_store
    init_counter_store(app)

    ErrorHandler.register_handlers(app)
    app.logger.info("错误处理器已注册")

    # JWT 错误处理
    @jwt.invalid_token_loader
    def invalid_token_callback(error_string):
        return jsonify({
            'success': False,
            'error': 'invalid_token',
            'message': str(error_string)
        }), 422

    @jwt.unauthorized_loader
    def unauthorized_callback(error_string):
        return jsonify({
            'success': False,
            'error': 'missing_token',
            'message': str(error_string)
        }), 401

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'success': False,
            'error': 'token_expired',
            'message': 'Your session has expired. Please sign in again.'
        }), 401

    # 注册所有蓝图
    with app.app_context():
        from mulaboard.routes.auth import auth_bp
        from mulaboard.routes.feedback import feedback_bp
        from mulaboard.routes.admin import admin_bp
        from mulaboard.routes.periods import periods_bp
        from mulaboard.routes.quotes import quotes_bp
        from mulaboard.routes.users import users_bp

        app.register_blueprint(auth_bp, url_prefix='/api/auth')
        app.register_blueprint(feedback_bp, url_prefix='/api/feedback')
        app.register_blueprint(admin_bp, url_prefix='/api/admin')
        app.register_blueprint(periods_bp, url_prefix='/api/periods')
        app.register_blueprint(quotes_bp, url_prefix='/api/quotes')
        app.register_blueprint(users_bp, url_prefix='/api/users')

        # 确保模型已导入后再建表
        from mulaboard import models  # noqa: F401
        db.create_all()

    @app.route('/api/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'message': 'MulaBoard backend is running'
        }), 200

    app.url_map.strict_slashes = False
    app.logger.info("Flask 应用创建完成")
    return app
