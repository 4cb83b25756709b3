"""
Structured metric events for orders, cash movements and periodic sweeps.

Each event is written to the log and kept in a bounded in-memory buffer
that the admin API reads from.
"""
import logging
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class MetricEvent:
    timestamp: datetime
    category: str          # order, portfolio, settlement, account, pipeline
    event_type: str        # placed, filled, cash_deposit, ...
    symbol: Optional[str]
    portfolio_id: Optional[int]
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class MetricsEmitter:

    CATEGORY_ORDER = "order"
    CATEGORY_PORTFOLIO = "portfolio"
    CATEGORY_SETTLEMENT = "settlement"
    CATEGORY_ACCOUNT = "account"
    CATEGORY_PIPELINE = "pipeline"

    def __init__(self, buffer_size: int = 1000):
        self._events: Deque[MetricEvent] = deque(maxlen=buffer_size)
        self._enabled = True

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        """Stop recording; used by the test suite."""
        self._enabled = False

    def emit(
        self,
        category: str,
        event_type: str,
        value: float,
        symbol: Optional[str] = None,
        portfolio_id: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[MetricEvent]:
        """
        Record one event. Returns None while the emitter is disabled.

        `value` is a count or an amount depending on the event; extra
        context goes in `metadata`.
        """
        if not self._enabled:
            return None

        event = MetricEvent(
            timestamp=datetime.now(timezone.utc),
            category=category,
            event_type=event_type,
            symbol=symbol,
            portfolio_id=portfolio_id,
            value=value,
            metadata=metadata or {},
        )
        extra = f" {event.metadata}" if event.metadata else ""
        logger.info(f"METRIC {category}.{event_type} portfolio={portfolio_id} "
                    f"symbol={symbol} value={value}{extra}")
        self._events.append(event)
        return event

    # =========================================================================
    # Domain events
    # =========================================================================

    def order_placed(self, portfolio_id: int, symbol: str, side: str,
                     order_type: str, qty: float) -> Optional[MetricEvent]:
        return self.emit(self.CATEGORY_ORDER, "placed", qty, symbol=symbol,
                         portfolio_id=portfolio_id, metadata={"side": side, "type": order_type})

    def order_filled(self, portfolio_id: int, symbol: str, side: str,
                     qty: float, price: float, fees: float) -> Optional[MetricEvent]:
        return self.emit(self.CATEGORY_ORDER, "filled", qty, symbol=symbol,
                         portfolio_id=portfolio_id,
                         metadata={"side": side, "price": price, "fees": fees})

    def order_closed(self, portfolio_id: int, symbol: str, status: str,
                     reason: Optional[str]) -> Optional[MetricEvent]:
        """An order left the active set without a fill."""
        return self.emit(self.CATEGORY_ORDER, status.lower(), 1.0, symbol=symbol,
                         portfolio_id=portfolio_id,
                         metadata={"reason": reason} if reason else None)

    def cash_movement(self, portfolio_id: int, kind: str, amount: float) -> Optional[MetricEvent]:
        return self.emit(self.CATEGORY_PORTFOLIO, f"cash_{kind}", amount, portfolio_id=portfolio_id)

    def achievement_awarded(self, username: str, name: str, points: int) -> Optional[MetricEvent]:
        return self.emit(self.CATEGORY_ACCOUNT, "achievement_awarded", points,
                         metadata={"username": username, "achievement": name})

    def batch_processed(self, stage: str, count: int, success: int,
                        failed: int, duration_ms: Optional[float] = None) -> Optional[MetricEvent]:
        return self.emit(self.CATEGORY_PIPELINE, f"{stage}_completed", count,
                         metadata={"success": success, "failed": failed, "duration_ms": duration_ms})

    # =========================================================================
    # Reads
    # =========================================================================

    def get_buffer(self) -> List[MetricEvent]:
        return list(self._events)

    def get_recent(self, category: Optional[str] = None, limit: int = 100) -> List[MetricEvent]:
        """Newest first."""
        matching = (e for e in reversed(self._events) if category is None or e.category == category)
        return [event for _, event in zip(range(limit), matching)]

    def get_summary(self, hours: int = 24) -> dict:
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        window = [e for e in self._events if e.timestamp >= since]
        per_event = Counter(f"{e.category}/{e.event_type}" for e in window)
        return {
            "period_hours": hours,
            "total_events": len(window),
            "by_category": dict(Counter(e.category for e in window)),
            "by_event": dict(per_event),
            "orders_placed": per_event["order/placed"],
            "orders_filled": per_event["order/filled"],
            "orders_failed": per_event["order/failed"],
        }

    def clear_buffer(self) -> int:
        cleared = len(self._events)
        self._events.clear()
        return cleared


metrics = MetricsEmitter()
