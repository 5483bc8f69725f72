"""Shared fixtures: a throwaway SQLite database per test."""
import pytest
from sqlalchemy.orm import sessionmaker

from app.agent.conversation_state import ConversationSession, ProductSnapshot
from app.db.base import Base
from app.db.session import build_engine
from app.models import DeliveryZone, Product
from app.services.delivery_zones import default_zone_rows
from app.services.record_store import RecordStore


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with factory() as db:
        for row in default_zone_rows():
            db.add(DeliveryZone(**row))
        db.add(Product(id="jeu-couple", name="Jeu pour Couples", price=14900, stock=10, status="active"))
        db.commit()
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return RecordStore(session_factory)


@pytest.fixture
def product():
    return ProductSnapshot(id="jeu-couple", name="Jeu pour Couples", price=14900, stock=10)


@pytest.fixture
def session(product):
    return ConversationSession(session_id="jeu-couple_default_1_abcd", product=product)
