"""
Gradian Dashboard Metrics Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Pure aggregation functions over procurement records. Nothing here performs
I/O; the API layer loads the collections and passes them in.
"""

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .utils import parse_datetime

COST_SAVINGS_RATE = 0.05
OPEN_TENDER_STATUSES = ("PUBLISHED", "CLOSED")
DEFAULT_CATEGORY = "Other"


# ==================== RESULT MODELS ====================

class MetricsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class DashboardMetrics(MetricsModel):
    total_spend: float = 0
    cost_savings: float = 0
    average_vendor_rating: float = 0
    on_time_delivery: float = 0
    active_vendors: int = 0
    open_tenders: int = 0
    purchase_orders: int = 0
    pending_invoices: int = 0


class SpendAnalysis(MetricsModel):
    category: str
    amount: float
    percentage: float
    trend: str = "stable"


class MonthlyTrend(MetricsModel):
    month: str
    spend: float
    orders: int


class QuarterlySpend(MetricsModel):
    quarter: str
    spend: float
    orders: int


# ==================== HELPERS ====================

def _amount(record: Dict[str, Any]) -> float:
    value = record.get("totalAmount")
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _vendor_for(po: Dict[str, Any], vendors_by_id: Dict[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    vendor = po.get("vendor")
    if isinstance(vendor, dict):
        return vendor
    vendor_id = po.get("vendorId")
    return vendors_by_id.get(vendor_id) if vendor_id else None


def resolve_category(po: Dict[str, Any], vendors_by_id: Optional[Dict[str, Dict[str, Any]]] = None) -> str:
    """First present of tender category, PO category, vendor primary category, vendor's first category."""
    tender = po.get("tender")
    if isinstance(tender, dict) and tender.get("category"):
        return tender["category"]
    if po.get("category"):
        return po["category"]

    vendor = _vendor_for(po, vendors_by_id or {})
    if vendor:
        if vendor.get("primaryCategory"):
            return vendor["primaryCategory"]
        categories = vendor.get("categories")
        if isinstance(categories, list) and categories and categories[0]:
            return categories[0]

    return DEFAULT_CATEGORY


# ==================== CALCULATIONS ====================

def calculate_dashboard_metrics(
    purchase_orders: List[Dict[str, Any]],
    vendors: List[Dict[str, Any]],
    tenders: List[Dict[str, Any]],
    shipments: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]]
) -> DashboardMetrics:
    total_spend = sum(_amount(po) for po in purchase_orders)

    ratings = []
    for vendor in vendors:
        rating = vendor.get("rating")
        ratings.append(float(rating) if isinstance(rating, (int, float)) and not isinstance(rating, bool) else 0.0)
    average_rating = sum(ratings) / len(ratings) if ratings else 0

    delivered = [s for s in shipments if s.get("status") == "DELIVERED"]
    on_time = 0
    for shipment in delivered:
        actual = parse_datetime(shipment.get("actualDeliveryDate"))
        estimated = parse_datetime(shipment.get("estimatedDeliveryDate"))
        if actual and estimated and actual <= estimated:
            on_time += 1

    return DashboardMetrics(
        total_spend=total_spend,
        cost_savings=total_spend * COST_SAVINGS_RATE,
        average_vendor_rating=average_rating,
        on_time_delivery=(on_time / len(delivered)) * 100 if delivered else 0,
        active_vendors=sum(1 for v in vendors if v.get("status") == "ACTIVE"),
        open_tenders=sum(1 for t in tenders if t.get("status") in OPEN_TENDER_STATUSES),
        purchase_orders=len(purchase_orders),
        pending_invoices=sum(1 for i in invoices if i.get("status") == "PENDING_APPROVAL"),
    )


def calculate_spend_analysis(
    purchase_orders: List[Dict[str, Any]],
    vendors: Optional[List[Dict[str, Any]]] = None
) -> List[SpendAnalysis]:
    """Spend per category in first-seen order; empty when there is no spend."""
    vendors_by_id = {v.get("id"): v for v in vendors or [] if v.get("id")}

    spend: Dict[str, float] = {}
    for po in purchase_orders:
        category = resolve_category(po, vendors_by_id)
        spend[category] = spend.get(category, 0.0) + _amount(po)

    total = sum(spend.values())
    if total == 0:
        return []

    return [
        SpendAnalysis(category=category, amount=amount, percentage=(amount / total) * 100)
        for category, amount in spend.items()
    ]


def calculate_monthly_trends(purchase_orders: List[Dict[str, Any]]) -> List[MonthlyTrend]:
    """Spend and order count per ``YYYY-MM``, oldest month first."""
    buckets: Dict[str, List[float]] = {}
    for po in purchase_orders:
        created = parse_datetime(po.get("createdAt"))
        if created is None:
            continue
        bucket = buckets.setdefault(created.strftime("%Y-%m"), [0.0, 0])
        bucket[0] += _amount(po)
        bucket[1] += 1

    return [
        MonthlyTrend(month=month, spend=spend, orders=orders)
        for month, (spend, orders) in sorted(buckets.items())
    ]


def calculate_quarterly_spend(purchase_orders: List[Dict[str, Any]]) -> List[QuarterlySpend]:
    """Spend and order count per ``YYYY-Qn``, oldest quarter first."""
    buckets: Dict[str, List[float]] = {}
    for po in purchase_orders:
        created = parse_datetime(po.get("createdAt"))
        if created is None:
            continue
        quarter = f"{created.year}-Q{(created.month - 1) // 3 + 1}"
        bucket = buckets.setdefault(quarter, [0.0, 0])
        bucket[0] += _amount(po)
        bucket[1] += 1

    return [
        QuarterlySpend(quarter=quarter, spend=spend, orders=orders)
        for quarter, (spend, orders) in sorted(buckets.items())
    ]


def count_by_status(items: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Histogram of ``status`` values; records without one count as ``UNKNOWN``."""
    return dict(Counter(item.get("status") or "UNKNOWN" for item in items))
