from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text
from sqlalchemy.sql import func
from app.db.base import Base


class Product(Base):
    """Catalogue entry a chat session is opened for."""
    __tablename__ = "products"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)  # FCFA
    stock = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default="active")  # active | archived
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Product id={self.id} name={self.name}>"
