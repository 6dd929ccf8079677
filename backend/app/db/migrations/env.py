# Alembic 驱动脚本：连接串以 Settings.DATABASE_URL 为准，离线/在线两种模式

from __future__ import annotations

import logging
from logging.config import fileConfig
from typing import Any, Dict, Optional

from alembic import context
from sqlalchemy import engine_from_config, pool

from app.core.config import settings
from app.db.base import Base
import app.db.model  # noqa: F401  shops / catalog 表


config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name:
    try:
        fileConfig(config.config_file_name)
    except KeyError:
        # alembic.ini 没有 [loggers] 段
        logging.basicConfig(level=logging.INFO)


def _configure_kwargs(url: Optional[str]) -> Dict[str, Any]:
    return {
        "target_metadata": Base.metadata,
        # SQLite 不支持大部分 ALTER，用 batch 模式重建表
        "render_as_batch": bool(url) and url.startswith("sqlite"),
        "compare_type": True,
        "compare_server_default": True,
    }


def run_migrations_offline() -> None:
    """只生成 SQL，不连库：alembic upgrade head --sql"""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, literal_binds=True, **_configure_kwargs(url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(str(connection.engine.url)))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
