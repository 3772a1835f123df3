# Tables owned by the listing and account services; chat only reads them
# to decorate thread summaries.
from sqlalchemy import Column, String

from pkg.db_util.sql_alchemy.declarative_base import Base, IdType


class BookModel(Base):
    __tablename__ = "books"

    id = Column(IdType, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    seller_id = Column(IdType, nullable=True, index=True)


class SellerModel(Base):
    __tablename__ = "sellers"

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)


class BuyerModel(Base):
    __tablename__ = "buyers"

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
