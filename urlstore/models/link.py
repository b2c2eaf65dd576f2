from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Table
from urlstore.database.connection import Base


# Persisted layout: no table-level primary key, uniqueness comes from links_id_uniq
links_table = Table(
    "links",
    Base.metadata,
    Column("id", BigInteger, nullable=False),
    Column("url", String, nullable=False),
    Column("expires", DateTime(timezone=True), nullable=True),
    Column("visits", Integer, nullable=False, default=0, server_default="0"),
)

links_id_uniq = Index("links_id_uniq", links_table.c.id, unique=True)

links_expires_idx = Index(
    "links_expires_idx",
    links_table.c.expires,
    postgresql_where=links_table.c.expires.isnot(None),
    sqlite_where=links_table.c.expires.isnot(None),
)

# Equality lookups for find(url) only, so a hash index is enough on PostgreSQL
links_url_idx = Index("links_url_idx", links_table.c.url, postgresql_using="hash")


class Link(Base):
    """
    Relational row for an Item.

    Ids are unsigned 64-bit in the domain but BIGINT is signed, so rows hold
    the two's-complement value (see to_signed_id / to_unsigned_id).
    """
    __table__ = links_table
    __mapper_args__ = {"primary_key": [links_table.c.id]}


def to_signed_id(item_id: int) -> int:
    return item_id - 2 ** 64 if item_id >= 2 ** 63 else item_id


def to_unsigned_id(row_id: int) -> int:
    return row_id + 2 ** 64 if row_id < 0 else row_id
