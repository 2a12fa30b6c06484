"""Stock checks for cart quantities.

Missing stock levels are handled asymmetrically on purpose:

- ``can_accept`` treats ``None`` as "not tracked" and always accepts.
- ``can_increase`` and ``classify`` treat ``None`` as zero stock.

Both behaviours are kept until the product owner decides which one is right.
"""

from typing import Iterable, Optional

from .models import CartLine, InventoryReport

LOW_STOCK_THRESHOLD = 5


def can_accept(requested_qty: int, known_inventory: Optional[int]) -> bool:
    """True if ``requested_qty`` fits within ``known_inventory``."""
    if known_inventory is None:
        return True
    return requested_qty <= known_inventory


def can_increase(line: CartLine) -> bool:
    """True if one more unit of ``line`` would still be in stock."""
    return line.quantity < (line.inventory or 0)


def classify(lines: Iterable[CartLine]) -> InventoryReport:
    """Split cart lines into out-of-stock and low-stock groups."""
    report = InventoryReport()
    for line in lines:
        inventory = line.inventory or 0
        if inventory == 0:
            report.out_of_stock.append(line)
        elif inventory < LOW_STOCK_THRESHOLD:
            report.low_stock.append(line)
    return report
