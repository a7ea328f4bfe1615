from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from gigsync.config import STORAGE_URL

class Base(DeclarativeBase):
    pass

def create_storage_engine(url: str = STORAGE_URL) -> Engine:
    # 세션 복원은 동기로 해야 하므로 async 엔진이 아닌 일반 엔진을 사용
    return create_engine(url, echo=False, pool_pre_ping=True)

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(engine, expire_on_commit=False)
