"""
Подключение к базе данных (PostgreSQL или SQLite)
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from .config import get_settings

settings = get_settings()


def build_engine(database_url: str, echo: bool = False):
    """Создать движок под нужную СУБД"""
    if database_url.startswith("sqlite"):
        # SQLite - для локальной разработки и тестов
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 15},
            echo=echo
        )

    # PostgreSQL - для продакшена
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=10,
        echo=echo
    )


# Создание движка базы данных
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Создание фабрики сессий
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Базовый класс для моделей
Base = declarative_base()


def get_db():
    """
    Dependency для получения сессии базы данных
    Использование:
        @router.get("/items")
        def read_items(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Инициализация базы данных
    Создание всех таблиц, определенных в моделях
    """
    from . import models  # noqa: F401  регистрация моделей в Base.metadata

    Base.metadata.create_all(bind=engine)
