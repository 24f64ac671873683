#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
MulaBoard 后端服务启动脚本

使用方法：
1. 启动开发服务器：python run.py
2. 使用gunicorn部署：gunicorn -w 4 -b 0.0.0.0:5001 "run:app"

注意：
- 开发模式下使用Flask内置服务器
- 未配置 REDIS_URL 时反馈限流计数器关闭，接口限流退回进程内存
"""
import logging
import time

import redis

from mulaboard import create_app
from mulaboard.config import API_HOST, API_PORT, API_DEBUG, REDIS_URL, REDIS_SOCKET_TIMEOUT

# 创建Flask应用实例 - 为gunicorn提供
app = create_app()
logger = logging.getLogger('mulaboard.run')


def test_redis_connection():
    """写入并读回一个临时键，确认计数器存储可用"""
    if not REDIS_URL:
        logger.warning("未配置REDIS_URL，跳过Redis连接测试")
        return False
    try:
        logger.info(f"尝试连接Redis: {REDIS_URL}")
        client = redis.from_url(REDIS_URL, socket_timeout=REDIS_SOCKET_TIMEOUT,
                                socket_connect_timeout=REDIS_SOCKET_TIMEOUT)
        test_key = f"redis_test_{time.time()}"
        client.set(test_key, "ok", ex=10)
        value = client.get(test_key)
        client.delete(test_key)

        if value:
            logger.info("Redis连接测试成功")
            return True
        logger.error("Redis连接测试失败: 无法写入或读取测试键")
        return False
    except redis.RedisError as e:
        logger.error(f"Redis连接测试失败: {e}")
        return False


# 直接运行此脚本时启动Flask开发服务器
if __name__ == '__main__':
    if not test_redis_connection():
        logger.warning("Redis不可用，反馈限流检查将放行，但将继续启动应用")

    logger.info(f"应用配置: HOST={API_HOST}, PORT={API_PORT}, DEBUG={API_DEBUG}")
    app.run(host=API_HOST, port=API_PORT, debug=API_DEBUG)
