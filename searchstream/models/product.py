"""
Product model: the catalog rows searched by the full-text gateway
"""

from searchstream.core.database import Base
from sqlalchemy import BigInteger, Column, Computed, Index, Text, text
from sqlalchemy.dialects.postgresql import TSVECTOR

# Title ranks above description (weights A and B)
PRODUCT_TSV_EXPRESSION = (
    "setweight(to_tsvector('english', coalesce(title, '')), 'A') || "
    "setweight(to_tsvector('english', coalesce(description, '')), 'B')"
)


class Product(Base):
    """Searchable catalog item.

    ``tsv`` is a stored generated column maintained by PostgreSQL and backed
    by a GIN index; it is never written by the application.
    """

    __tablename__ = "products"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, server_default=text("''"))
    tsv = Column(TSVECTOR, Computed(PRODUCT_TSV_EXPRESSION, persisted=True))

    __table_args__ = (Index("idx_products_tsv", "tsv", postgresql_using="gin"),)

    def __repr__(self):
        return f"<Product(id={self.id}, title={self.title!r})>"


products_table = Product.__table__
