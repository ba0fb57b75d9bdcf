from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from bookwatch.core.config import settings


def configure_sqlite(engine: Engine) -> None:
    """让 pysqlite 正确支持 SAVEPOINT，并打开外键约束。

    pysqlite 默认延迟发出 BEGIN，会导致 begin_nested() 的回滚范围不正确；
    这里接管事务的开启时机。
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


_url = make_url(settings.DATABASE_URL)
_engine_kwargs: dict = {"echo": False, "pool_pre_ping": True}

if _url.drivername.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs.update({"pool_size": 10, "max_overflow": 20})

engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

if _url.drivername.startswith("sqlite"):
    configure_sqlite(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """数据库会话依赖注入"""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """把一组写操作作为一个整体提交；任何异常都整体回滚后继续抛出。"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
