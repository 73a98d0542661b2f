"""
SQLAlchemy ORM 基类定义

所有数据库模型都必须继承自这个 Base 类，
Base.metadata 用于自动建表和 Alembic 迁移。
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """声明式基类（SQLAlchemy 2.0 风格）"""
    pass
