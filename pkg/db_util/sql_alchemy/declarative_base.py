from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# BIGINT ids on Postgres; SQLite only autoincrements a plain INTEGER primary key
IdType = BigInteger().with_variant(Integer(), "sqlite")
