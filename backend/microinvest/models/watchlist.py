from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from microinvest.core.database import Base
from microinvest.models.base import IdMixin, TimestampMixin

watchlist_securities = Table(
    "watchlist_securities",
    Base.metadata,
    Column("watchlist_id", Integer, ForeignKey("watchlists.id", ondelete="CASCADE"), primary_key=True),
    Column("security_id", Integer, ForeignKey("securities.id", ondelete="CASCADE"), primary_key=True),
)


class Watchlist(Base, IdMixin, TimestampMixin):
    __tablename__ = "watchlists"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_watchlist_user_name"),
    )

    user_id = Column(Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"),
                     nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    is_default = Column(Boolean, nullable=False, default=False)

    # Eager so async callers never trigger a lazy load
    securities = relationship("Security", secondary=watchlist_securities, lazy="selectin")

    def __init__(self, **kwargs):
        kwargs.setdefault("is_default", False)
        super().__init__(**kwargs)

    @property
    def symbols(self) -> list[str]:
        return sorted(s.symbol for s in self.securities)
