from sqlmodel import create_engine, Session, SQLModel
from sqlalchemy.orm import sessionmaker

from stock_push.core.config import settings


engine_kwargs = {
    "pool_pre_ping": True,
    "echo": False  # Отключаем SQL логирование для производительности
}

# Пул соединений настраиваем только для PostgreSQL
if settings.SQLALCHEMY_DATABASE_URI.startswith("postgresql"):
    engine_kwargs.update(
        pool_size=20,
        max_overflow=30,
        pool_timeout=60,
        pool_recycle=3600,  # Переиспользовать соединения через 1 час
    )

engine = create_engine(settings.SQLALCHEMY_DATABASE_URI, **engine_kwargs)
SessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)


def init_db(bind=None) -> None:
    """Создает таблицы сервиса, если их еще нет."""
    # Регистрация моделей в SQLModel.metadata
    import stock_push.models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


# Dependency
def get_db():
    with SessionLocal() as session:
        try:
            yield session
        finally:
            session.close()
