import os
from dotenv import load_dotenv

# 加载.env文件
load_dotenv()

# API相关配置
API_HOST = os.getenv('API_HOST', '0.0.0.0')
API_PORT = int(os.getenv('API_PORT', 5001))
API_DEBUG = os.getenv('API_DEBUG', 'False').lower() == 'true'

# 安全相关配置
SECRET_KEY = os.getenv('SECRET_KEY', 'dev_secret_key_12345')
JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt_secret_key_67890')
JWT_ACCESS_TOKEN_EXPIRES = 60 * 60 * 24 * 7  # 7天
JWT_TOKEN_LOCATION = ['headers']
JWT_HEADER_NAME = 'Authorization'
JWT_HEADER_TYPE = 'Bearer'

# 数据库配置
DB_TYPE = os.getenv('DB_TYPE', 'sqlite')
DB_USER = os.getenv('DB_USER')
DB_PASSWORD = os.getenv('DB_PASSWORD')
DB_HOST = os.getenv('DB_HOST', 'localhost')
DB_PORT = os.getenv('DB_PORT', '5432')
DB_NAME = os.getenv('DB_NAME')
SQLALCHEMY_TRACK_MODIFICATIONS = False
SQLALCHEMY_ECHO = False

# --- SQLAlchemy 连接池配置 (仅 PostgreSQL 生效) ---
SQLALCHEMY_POOL_SIZE = 10       # 池中保持的最小连接数
SQLALCHEMY_MAX_OVERFLOW = 5     # 允许池大小临时超出的连接数
SQLALCHEMY_POOL_TIMEOUT = 5     # 获取连接的超时时间 (秒)，超时按存储不可用处理
SQLALCHEMY_POOL_RECYCLE = 1800  # 连接自动回收时间 (秒)

# Redis配置，留空则关闭计数器（限流检查放行）
REDIS_URL = os.getenv('REDIS_URL', '')
REDIS_SOCKET_TIMEOUT = float(os.getenv('REDIS_SOCKET_TIMEOUT', 3))

# 反馈防刷配置
FEEDBACK_FINGERPRINT_LIMIT = int(os.getenv('FEEDBACK_FINGERPRINT_LIMIT', 1))  # 同一指纹对同一用户同一周期的提交上限
FEEDBACK_IP_LIMIT = int(os.getenv('FEEDBACK_IP_LIMIT', 5))  # 同一网络对同一用户同一周期的提交上限
FEEDBACK_RATE_WINDOW = int(os.getenv('FEEDBACK_RATE_WINDOW', 3600))  # 计数窗口 (秒)
FEEDBACK_MIN_FORM_SECONDS = int(os.getenv('FEEDBACK_MIN_FORM_SECONDS', 30))  # 表单最短填写时间

# 接口限流配置 (Flask-Limiter)
RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '2000 per day;500 per hour')
RATELIMIT_SUBMIT = os.getenv('RATELIMIT_SUBMIT', '20 per hour')

# 日志目录
LOG_DIR = os.getenv('LOG_DIR', os.path.join(os.path.abspath(os.path.dirname(os.path.dirname(__file__))), 'logs'))

# 公开访问地址，用于拼接个人主页链接
APP_URL = os.getenv('APP_URL', 'http://localhost:3000')

# CORS配置
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5001",
]
if os.getenv('CORS_EXTRA_ORIGIN'):
    CORS_ORIGINS.append(os.getenv('CORS_EXTRA_ORIGIN'))


# 获取数据库URI
def get_database_uri():
    """构建数据库URI"""
    if os.getenv('DATABASE_URL'):
        return os.getenv('DATABASE_URL')
    if DB_TYPE == 'postgresql':
        return f'postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}'
    # 默认使用SQLite
    return 'sqlite:///' + os.path.join(os.path.abspath(os.path.dirname(__file__)), 'mulaboard.db')


def get_engine_options(database_uri):
    """连接池参数只对非 SQLite 数据库有效"""
    if database_uri.startswith('sqlite'):
        return {}
    return {
        'pool_size': SQLALCHEMY_POOL_SIZE,
        'max_overflow': SQLALCHEMY_MAX_OVERFLOW,
        'pool_timeout': SQLALCHEMY_POOL_TIMEOUT,
        'pool_recycle': SQLALCHEMY_POOL_RECYCLE,
        'pool_pre_ping': True,
    }
