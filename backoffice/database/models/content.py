"""
内容实体模型

文章、博客、地点、商品均支持软删除（deleted_at）
"""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database.base import Base, SoftDeleteMixin, TimestampMixin
from backoffice.database.mixins import generate_uuid


class Article(Base, TimestampMixin, SoftDeleteMixin):
    """百科文章"""

    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    slug: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)


class BlogPost(Base, TimestampMixin, SoftDeleteMixin):
    """博客文章"""

    __tablename__ = "blog_posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)


class Place(Base, TimestampMixin, SoftDeleteMixin):
    """地点"""

    __tablename__ = "places"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)


class Product(Base, TimestampMixin, SoftDeleteMixin):
    """商品"""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
