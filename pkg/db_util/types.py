from dataclasses import dataclass
from typing import Optional


@dataclass
class PostgresConfig:
    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: str = ""
    database: str = "postgres"  # Default database
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 10  # seconds
    pool_recycle: int = 3600
    # Full SQLAlchemy URL; when set it wins over the individual parts (e.g. sqlite+aiosqlite in tests)
    url: Optional[str] = None


@dataclass
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    db: int = 0
    ssl: bool = False
    url: Optional[str] = None
    max_connections: int = 20
