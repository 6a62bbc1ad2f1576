
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .utils import OtherCostItem

logger = logging.getLogger(__name__)


@dataclass
class DepreciationSchedule:
    item_id: str
    label: str
    method: str
    life_years: int
    rate_pct: Optional[float]
    by_year: List[float]
    first_charge: float


def other_costs_series(items: List[OtherCostItem], years: int, base_year: int) -> Tuple[List[float], List[float]]:
    """Return (all costs, constrained costs) per year index for project-level cost items."""
    costs = [0.0] * (years + 1)
    constrained = [0.0] * (years + 1)
    for c in items:
        if c.type == 'annual':
            sy = c.start_year if c.start_year is not None else base_year
            ey = c.end_year if c.end_year is not None else sy
            for y in range(sy, ey + 1):
                idx = y - base_year + 1
                if 1 <= idx <= years:
                    costs[idx] += c.annual_amount
                    if c.constrained:
                        constrained[idx] += c.annual_amount
        elif c.type == 'capital':
            cy = c.capital_year if c.capital_year is not None else base_year
            idx = cy - base_year
            # offsets outside the horizon are dropped, not piled onto an end year
            if 0 <= idx <= years:
                costs[idx] += c.capital_amount
                if c.constrained:
                    constrained[idx] += c.capital_amount
            else:
                logger.debug('Capital cost %s in %s falls outside the horizon; dropped', c.id, cy)
    return costs, constrained


def depreciation_schedule(item: OtherCostItem, years: int, base_year: int) -> Optional[DepreciationSchedule]:
    """Reporting-only schedule for a capital item; cash flows are unaffected."""
    method = item.depreciation.method
    cost = item.capital_amount
    if item.type != 'capital' or method == 'none' or not cost:
        return None
    life = max(1, int(item.depreciation.life_years or 5))
    rate = item.depreciation.declining_rate_pct or 30.0
    cy = item.capital_year if item.capital_year is not None else base_year
    start = cy - base_year
    sched = [0.0] * (years + 1)

    if method == 'straight_line':
        annual = cost / life
        for i in range(life):
            idx = start + i
            if 0 <= idx <= years:
                sched[idx] += annual
    else:
        book = cost
        for i in range(life):
            dep = book * rate / 100.0
            idx = start + i
            if 0 <= idx <= years:
                sched[idx] += dep
            book -= dep
            if book <= 0:
                break

    first = next((v for v in sched if v > 0), 0.0)
    return DepreciationSchedule(
        item_id=item.id,
        label=item.label,
        method=method,
        life_years=life,
        rate_pct=rate if method == 'declining_balance' else None,
        by_year=sched,
        first_charge=first,
    )


def depreciation_report(items: List[OtherCostItem], years: int, base_year: int) -> Tuple[List[DepreciationSchedule], List[float]]:
    """Per-item schedules plus the total charge per year index."""
    schedules = []
    total = [0.0] * (years + 1)
    for c in items:
        s = depreciation_schedule(c, years, base_year)
        if s is None:
            continue
        schedules.append(s)
        for i, v in enumerate(s.by_year):
            total[i] += v
    return schedules, total
