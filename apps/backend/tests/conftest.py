from __future__ import annotations

import os
import tempfile
from datetime import date
from typing import Generator, Any

import pytest
from sqlalchemy.orm import sessionmaker

from pfm.core.config import settings
from pfm.core.database import Base, build_engine, get_db
from pfm.main import app
from pfm.seed import seed_defaults
from pfm import models


# 테스트 중에는 백그라운드 폴러를 띄우지 않음
settings.SCHEDULER_ENABLED = False


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # 사용자 환경을 건드리지 않도록 임시 파일 SQLite 사용
    fd, path = tempfile.mkstemp(prefix="pfm_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    # WAL 모드라 -wal/-shm 파일도 함께 정리
    for leftover in (path, f"{path}-wal", f"{path}-shm"):
        try:
            os.remove(leftover)
        except OSError:
            pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    # 운영과 같은 pragma(FK, WAL) 적용
    eng = build_engine(test_db_url)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="session")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture(scope="function")
def db_session(engine, session_factory) -> Generator[Any, Any, Any]:
    session = session_factory()
    # 매 테스트마다 demo user + 기본 자산 카테고리 시드
    seed_defaults(session)

    try:
        yield session
    finally:
        session.close()
        # 테이블 데이터 정리 (SQLAlchemy 2.x 스타일)
        with engine.begin() as conn:
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture()
def user(db_session) -> models.User:
    return db_session.query(models.User).filter_by(email="demo@example.com").one()


@pytest.fixture()
def make_asset(db_session, user):
    """Factory: create an asset in the named category with an optional opening balance."""

    def _make(name: str, category: str = "Checking", balance: float | None = None, on: date | None = None):
        cat = db_session.query(models.AssetCategory).filter_by(name=category).one()
        asset = models.Asset(user_id=user.id, asset_category_id=cat.id, name=name)
        db_session.add(asset)
        db_session.flush()
        if balance is not None:
            db_session.add(models.AssetSnapshot(asset_id=asset.id, date=on or date(2025, 1, 1), balance=balance))
        db_session.commit()
        db_session.refresh(asset)
        return asset

    return _make


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
