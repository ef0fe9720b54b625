# app/db/upsert.py
# ON CONFLICT 구문은 dialect별 insert()가 필요하다 (postgres 운영 / sqlite 테스트).
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_insert(db: Session, model):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"upsert not supported for dialect {name!r}")
