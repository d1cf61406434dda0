"""
Table models for raw ticks and aggregated OHLCV bars.
"""

from sqlalchemy import Column, DateTime, Index, Numeric, String

from shared.database import Base


class RawPriceData(Base):
    """
    Raw tick prices written by the ingestion process.

    The table has no primary key of its own; the mapper identifies rows by
    (ticker, timestamp) only so the ORM can map it. Nothing here writes to it.
    """

    __tablename__ = "raw_price_data"

    ticker = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    price = Column(Numeric, nullable=False)
    volume = Column(Numeric, nullable=False)

    __table_args__ = (
        Index("ix_raw_price_data_ticker_timestamp", "ticker", "timestamp"),
    )
    __mapper_args__ = {"primary_key": [ticker, timestamp]}

    def __repr__(self):
        return f"<RawPriceData {self.ticker} {self.timestamp} {self.price}>"


class OhlcBarMixin:
    """Columns shared by every OHLC table. (ticker, timestamp) is unique."""

    ticker = Column(String, primary_key=True)
    timestamp = Column(DateTime(timezone=True), primary_key=True)  # bucket start
    open = Column(Numeric, nullable=False)
    high = Column(Numeric, nullable=False)
    low = Column(Numeric, nullable=False)
    close = Column(Numeric, nullable=False)
    volume = Column(Numeric, nullable=False)

    def __repr__(self):
        return (
            f"<{type(self).__name__} {self.ticker} {self.timestamp} "
            f"O={self.open} H={self.high} L={self.low} C={self.close} V={self.volume}>"
        )


class MinuteOhlcData(OhlcBarMixin, Base):
    __tablename__ = "minute_ohlc_data"


class HourOhlcData(OhlcBarMixin, Base):
    __tablename__ = "hour_ohlc_data"


class DailyOhlcData(OhlcBarMixin, Base):
    __tablename__ = "daily_ohlc_data"


def ohlc_table(table_name: str):
    """Look up an OHLC table by name."""
    return Base.metadata.tables[table_name]
