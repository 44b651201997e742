from db.session import SessionLocal


def get_db():
    """Sessão SQLAlchemy por requisição."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
