"""
Relational persistence for crawled sites.

Tables: sites, company_info, design_tokens, products, brand_voice.
Bulk inserts run in one transaction; a failing row rolls back the whole
batch and raises StoreTransactionError.

Usage:
    repo = BrandRepository("sqlite:///brands.db")
    site = repo.create_site(url=..., domain=..., title=...)
    repo.create_design_tokens_bulk([{...}, {...}])
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from loguru import logger
from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .errors import StoreTransactionError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Site(Base):
    __tablename__ = "sites"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(2048), index=True)
    domain: Mapped[str] = mapped_column(String(512), index=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    screenshot: Mapped[str | None] = mapped_column(Text, nullable=True)  # base64
    crawled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class CompanyInfo(Base):
    __tablename__ = "company_info"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    company_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    legal_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    contact_emails: Mapped[list] = mapped_column(JSON, default=list)
    contact_phones: Mapped[list] = mapped_column(JSON, default=list)
    addresses: Mapped[list] = mapped_column(JSON, default=list)
    structured_json: Mapped[dict] = mapped_column(JSON, default=dict)


class DesignToken(Base):
    __tablename__ = "design_tokens"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    token_key: Mapped[str] = mapped_column(String(256))
    token_type: Mapped[str] = mapped_column(String(64))
    token_value: Mapped[Any] = mapped_column(JSON)
    source: Mapped[str] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column(JSON, default=dict)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    name: Mapped[str] = mapped_column(String(512))
    slug: Mapped[str | None] = mapped_column(String(512), nullable=True)
    price: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    meta: Mapped[dict] = mapped_column("metadata", JSON, default=dict)


class BrandVoiceRow(Base):
    __tablename__ = "brand_voice"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    summary: Mapped[str] = mapped_column(Text)
    guidelines: Mapped[Any] = mapped_column(JSON, default=dict)
    embedding: Mapped[list] = mapped_column(JSON, default=list)


def row_to_dict(row: Base) -> dict:
    return {col.key: getattr(row, col.key) for col in row.__mapper__.column_attrs}


class BrandRepository:
    """Synchronous SQLAlchemy repository; wrap calls in asyncio.to_thread from async code."""

    def __init__(self, database_url: str, echo: bool = False):
        # Calls arrive from asyncio.to_thread workers
        connect_args = {'check_same_thread': False} if database_url.startswith('sqlite') else {}
        self.engine = create_engine(database_url, echo=echo, pool_pre_ping=True, connect_args=connect_args)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ----------------------
    # Sites
    # ----------------------

    def create_site(self, url: str, domain: str, title: str | None = None, description: str | None = None,
                    raw_html: str | None = None, screenshot: str | None = None) -> dict:
        with self.session() as s:
            site = Site(url=url, domain=domain, title=title, description=description,
                        raw_html=raw_html, screenshot=screenshot)
            s.add(site)
            s.flush()
            return row_to_dict(site)

    def get_site_by_url(self, url: str) -> dict | None:
        with self.session() as s:
            site = s.scalars(select(Site).where(Site.url == url)).first()
            return row_to_dict(site) if site else None

    def update_site(self, site_id: int, title: str | None = None, description: str | None = None,
                    raw_html: str | None = None, screenshot: str | None = None) -> dict | None:
        """Overwrite only the fields given; always bump crawled_at."""
        with self.session() as s:
            site = s.get(Site, site_id)
            if site is None:
                return None
            if title is not None:
                site.title = title
            if description is not None:
                site.description = description
            if raw_html is not None:
                site.raw_html = raw_html
            if screenshot is not None:
                site.screenshot = screenshot
            site.crawled_at = _now()
            s.flush()
            return row_to_dict(site)

    # ----------------------
    # Company info
    # ----------------------

    def create_company_info(self, site_id: int, company_name: str | None = None, legal_name: str | None = None,
                            contact_emails: list | None = None, contact_phones: list | None = None,
                            addresses: list | None = None, structured_json: dict | None = None) -> dict:
        with self.session() as s:
            info = CompanyInfo(
                site_id=site_id,
                company_name=company_name,
                legal_name=legal_name,
                contact_emails=list(contact_emails or []),
                contact_phones=list(contact_phones or []),
                addresses=list(addresses or []),
                structured_json=dict(structured_json or {}),
            )
            s.add(info)
            s.flush()
            return row_to_dict(info)

    def get_company_info(self, site_id: int) -> dict | None:
        with self.session() as s:
            info = s.scalars(select(CompanyInfo).where(CompanyInfo.site_id == site_id)).first()
            return row_to_dict(info) if info else None

    # ----------------------
    # Bulk inserts
    # ----------------------

    def _bulk_insert(self, rows: list[Base], what: str) -> list[dict]:
        try:
            with self.session() as s:
                s.add_all(rows)
                s.flush()
                return [row_to_dict(r) for r in rows]
        except SQLAlchemyError as e:
            logger.error(f"Bulk insert of {len(rows)} {what} rolled back: {e}")
            raise StoreTransactionError(f"Bulk insert of {what} failed; batch rolled back") from e

    def create_design_tokens_bulk(self, tokens: list[dict]) -> list[dict]:
        """
        Insert normalized token rows atomically.

        Args:
            tokens: Dicts with site_id, token_key, token_type, token_value,
                source and optional meta
        """
        rows = [
            DesignToken(
                site_id=t['site_id'],
                token_key=t['token_key'],
                token_type=t['token_type'],
                token_value=t.get('token_value'),
                source=t.get('source') or 'normalized',
                meta=dict(t.get('meta') or {}),
            )
            for t in tokens
        ]
        return self._bulk_insert(rows, 'design tokens')

    def get_design_tokens(self, site_id: int) -> list[dict]:
        with self.session() as s:
            stmt = (
                select(DesignToken)
                .where(DesignToken.site_id == site_id)
                .order_by(DesignToken.token_type, DesignToken.token_key)
            )
            return [row_to_dict(r) for r in s.scalars(stmt)]

    def create_products_bulk(self, products: list[dict]) -> list[dict]:
        rows = [
            Product(
                site_id=p['site_id'],
                name=p['name'],
                slug=p.get('slug'),
                price=p.get('price'),
                description=p.get('description'),
                product_url=p.get('product_url'),
                meta=dict(p.get('metadata') or {}),
            )
            for p in products
        ]
        return self._bulk_insert(rows, 'products')

    def get_products(self, site_id: int) -> list[dict]:
        with self.session() as s:
            return [row_to_dict(r) for r in s.scalars(select(Product).where(Product.site_id == site_id))]

    # ----------------------
    # Brand voice
    # ----------------------

    def create_brand_voice(self, site_id: int, summary: str, guidelines: Any = None,
                           embedding: list[float] | None = None) -> dict:
        with self.session() as s:
            row = BrandVoiceRow(
                site_id=site_id,
                summary=summary,
                guidelines=guidelines if guidelines is not None else {},
                embedding=list(embedding or []),
            )
            s.add(row)
            s.flush()
            return row_to_dict(row)

    def get_brand_voice(self, site_id: int) -> dict | None:
        with self.session() as s:
            row = s.scalars(select(BrandVoiceRow).where(BrandVoiceRow.site_id == site_id)).first()
            return row_to_dict(row) if row else None

    # ----------------------
    # Aggregate
    # ----------------------

    def get_complete_site_data(self, site_id: int) -> dict:
        with self.session() as s:
            site = s.get(Site, site_id)
            site_dict = row_to_dict(site) if site else None
        return {
            'site': site_dict,
            'companyInfo': self.get_company_info(site_id),
            'designTokens': self.get_design_tokens(site_id),
            'products': self.get_products(site_id),
            'brandVoice': self.get_brand_voice(site_id),
        }

    def close(self) -> None:
        self.engine.dispose()
