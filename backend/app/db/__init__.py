from .base import Base
from .session import SessionLocal, dispose_engine, engine, get_db, session_scope
from . import model  # noqa: F401  shops / catalog 表注册到 Base.metadata


def create_all() -> None:
    """
    本地空库一键建表（SQLite 调试也能用）：
        python -c "from app.db import create_all; create_all()"
    有迁移历史的库一律走 `alembic upgrade head`
    """
    Base.metadata.create_all(bind=engine)
