"""
测试公共配置

环境变量必须在导入 radar 模块之前设置（Settings 和数据库引擎在导入时创建）。
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_radar.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ADMIN_TOKEN", "secret-admin")
os.environ.setdefault("API_KEY_PREFIX", "rd_sk_")

import pytest  # noqa: E402

from radar.auth.rate_limit import get_oracle_rate_limiter, get_rate_limiter  # noqa: E402
from radar.services.ai_router import clear_route_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_process_state():
    """限流计数和路由缓存是进程级状态，每个测试前清空"""
    get_rate_limiter().reset()
    get_oracle_rate_limiter().reset()
    clear_route_cache()
    yield
