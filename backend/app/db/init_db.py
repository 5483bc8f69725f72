"""Create all tables and seed reference data. Run on app startup.

Seeds only empty tables: the default delivery zones (Dakar free, the rest of
Senegal at 2 500 FCFA) and one demo product so a chat can be opened on a
fresh install.
"""
import logging

from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.models import DeliveryZone, Product  # registers every model on Base
from app.services.delivery_zones import default_zone_rows

logger = logging.getLogger(__name__)

DEMO_PRODUCT = {
    "id": "jeu-couple",
    "name": "Jeu pour Couples",
    "description": "150 cartes de questions pour mieux se connaître et pimenter vos soirées.",
    "price": 14900,
    "stock": 250,
    "status": "active",
}


def init_db(bind=None, session_factory=None):
    bind = bind or engine
    session_factory = session_factory or SessionLocal
    Base.metadata.create_all(bind=bind)

    db = session_factory()
    try:
        if db.query(DeliveryZone).count() == 0:
            for row in default_zone_rows():
                db.add(DeliveryZone(**row))
            logger.info("[InitDB] Seeded default delivery zones")
        if db.query(Product).count() == 0:
            db.add(Product(**DEMO_PRODUCT))
            logger.info(f"[InitDB] Seeded demo product '{DEMO_PRODUCT['id']}'")
        db.commit()
    finally:
        db.close()
