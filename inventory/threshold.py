"""
Low-stock classification.

Everything here is a pure function of the records passed in.
"""

from dataclasses import dataclass


def is_low_stock(record):
    return record.quantity <= record.threshold_limit


def is_out_of_stock(record):
    return record.quantity == 0


def deficit(record):
    """The smallest restock that lifts `record` above its threshold (0 if already above)."""
    return max(0, record.threshold_limit - record.quantity + 1)


def classify(records):
    """Returns the low-stock records, keeping the order they were given in."""
    return [record for record in records if is_low_stock(record)]


def stock_status(record):
    if is_out_of_stock(record):
        return "OUT OF STOCK"
    if is_low_stock(record):
        return "LOW STOCK"
    return "OK"


@dataclass(frozen=True)
class StockSummary:
    total: int
    low_stock: int
    out_of_stock: int

    @property
    def healthy(self):
        return self.total - self.low_stock

    def percent(self, count):
        return (count * 100.0 / self.total) if self.total else 0.0


def summarize(records):
    records = list(records)
    low = classify(records)
    return StockSummary(
        total=len(records),
        low_stock=len(low),
        out_of_stock=sum(1 for record in low if is_out_of_stock(record)),
    )


def render_status_report(records, monitoring_active=False):
    """
    Builds the plaintext inventory status report.

    Args:
        records (list): Every product currently in the store.
        monitoring_active (bool): Whether the alert scheduler is running.

    Returns:
        str: The report, one line per low-stock product at the end.
    """
    records = list(records)
    summary = summarize(records)
    lines = [
        "=" * 59,
        "INVENTORY STOCK STATUS REPORT",
        "=" * 59,
        f"Total Products: {summary.total}",
        f"Healthy Stock: {summary.healthy} ({summary.percent(summary.healthy):.1f}%)",
        f"Low Stock: {summary.low_stock} ({summary.percent(summary.low_stock):.1f}%)",
        f"Out of Stock: {summary.out_of_stock}",
        f"Monitoring Status: {'ACTIVE' if monitoring_active else 'INACTIVE'}",
        "",
    ]
    low = classify(records)
    if low:
        lines.append("PRODUCTS REQUIRING ATTENTION:")
        lines.append("-" * 59)
        for record in low:
            lines.append(
                f"- {record.name} (ID: {record.id}) | Qty: {record.quantity}/{record.threshold_limit}"
                f" | {stock_status(record)}"
            )
    else:
        lines.append("All products are sufficiently stocked!")
    return "\n".join(lines) + "\n"
