"""Extra benefit items outside the treatment model.

Each accrual rule is its own variant; ``CATEGORY_VARIANTS`` maps the
category codes C1..C8 onto them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import InputError
from .utils import clamp

logger = logging.getLogger(__name__)

FREQUENCIES = ('Annual', 'Once')


@dataclass
class BenefitItem(ABC):
    id: str
    category: str
    label: str = ''
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    growth_pct_per_year: float = 0.0
    link_to_adoption: bool = False
    link_to_risk: bool = False

    @abstractmethod
    def base_amount(self) -> float:
        """Amount in the item's first year, before growth and scaling."""

    def multiplier(self, adoption: float, risk: float) -> float:
        a = clamp(adoption, 0.0, 1.0) if self.link_to_adoption else 1.0
        r = 1.0 - clamp(risk, 0.0, 1.0) if self.link_to_risk else 1.0
        return a * r

    def accrue(self, series: List[float], base_year: int, adoption: float, risk: float) -> None:
        n = len(series) - 1
        sy = self.start_year if self.start_year is not None else base_year
        ey = self.end_year if self.end_year is not None else sy
        amount = self.base_amount()
        scale = self.multiplier(adoption, risk)
        g = self.growth_pct_per_year / 100.0
        for y in range(sy, ey + 1):
            idx = y - base_year + 1
            if 1 <= idx <= n:
                series[idx] += amount * (1.0 + g) ** (y - sy) * scale


@dataclass
class UnitValueBenefit(BenefitItem):
    unit_value: float = 0.0
    quantity: float = 0.0

    def base_amount(self) -> float:
        return self.unit_value * self.quantity


@dataclass
class AbatementBenefit(BenefitItem):
    unit_value: float = 0.0
    abatement: float = 0.0

    def base_amount(self) -> float:
        return self.unit_value * self.abatement


@dataclass
class FlatAmountBenefit(BenefitItem):
    annual_amount: float = 0.0

    def base_amount(self) -> float:
        return self.annual_amount


@dataclass
class AvoidedLossBenefit(BenefitItem):
    # expected loss avoided: drop in event probability times its consequence
    baseline_probability: float = 0.0
    project_probability: float = 0.0
    consequence_value: float = 0.0

    def base_amount(self) -> float:
        return max(self.baseline_probability - self.project_probability, 0.0) * self.consequence_value


@dataclass
class LumpSumBenefit(BenefitItem):
    amount: float = 0.0
    once_year: Optional[int] = None

    def base_amount(self) -> float:
        return self.amount

    def accrue(self, series: List[float], base_year: int, adoption: float, risk: float) -> None:
        n = len(series) - 1
        year = self.once_year
        if year is None:
            year = self.start_year if self.start_year is not None else base_year
        idx = year - base_year + 1
        if 0 <= idx <= n:
            series[idx] += self.amount * self.multiplier(adoption, risk)
        else:
            logger.debug('Benefit %s at %s falls outside the horizon; dropped', self.id, year)


CATEGORY_VARIANTS = {
    'C1': UnitValueBenefit,
    'C2': UnitValueBenefit,
    'C3': AbatementBenefit,
    'C4': FlatAmountBenefit,
    'C5': FlatAmountBenefit,
    'C6': LumpSumBenefit,
    'C7': AvoidedLossBenefit,
    'C8': FlatAmountBenefit,
}


def benefit_from_record(rec: Dict[str, Any]) -> BenefitItem:
    """Build the variant for a flat benefit record.

    Frequency ``Once`` turns any category into a lump sum of
    ``annual_amount`` posted at ``once_year``.
    """
    cat = str(rec.get('category', '')).upper()
    freq = rec.get('frequency', 'Annual')
    if cat not in CATEGORY_VARIANTS:
        raise InputError(f"Benefit {rec.get('id')!r}: unknown category {rec.get('category')!r}")
    if freq not in FREQUENCIES:
        raise InputError(f"Benefit {rec.get('id')!r}: unknown frequency {freq!r}")

    common = dict(
        id=str(rec['id']),
        category=cat,
        label=rec.get('label', ''),
        start_year=rec.get('start_year'),
        end_year=rec.get('end_year'),
        growth_pct_per_year=float(rec.get('growth_pct_per_year', 0.0) or 0.0),
        link_to_adoption=bool(rec.get('link_to_adoption', False)),
        link_to_risk=bool(rec.get('link_to_risk', False)),
    )
    if freq == 'Once' or cat == 'C6':
        return LumpSumBenefit(amount=float(rec.get('annual_amount', 0.0) or 0.0),
                              once_year=rec.get('once_year'), **common)

    variant = CATEGORY_VARIANTS[cat]
    if variant is UnitValueBenefit:
        return UnitValueBenefit(unit_value=float(rec.get('unit_value', 0.0) or 0.0),
                                quantity=float(rec.get('quantity', 0.0) or 0.0), **common)
    if variant is AbatementBenefit:
        return AbatementBenefit(unit_value=float(rec.get('unit_value', 0.0) or 0.0),
                                abatement=float(rec.get('abatement', 0.0) or 0.0), **common)
    if variant is AvoidedLossBenefit:
        return AvoidedLossBenefit(baseline_probability=float(rec.get('baseline_probability', 0.0) or 0.0),
                                  project_probability=float(rec.get('project_probability', 0.0) or 0.0),
                                  consequence_value=float(rec.get('consequence_value', 0.0) or 0.0),
                                  **common)
    return FlatAmountBenefit(annual_amount=float(rec.get('annual_amount', 0.0) or 0.0), **common)


def additional_benefits_series(benefits: List[BenefitItem], years: int, base_year: int,
                               adoption: float, risk: float) -> List[float]:
    series = [0.0] * (years + 1)
    for b in benefits:
        b.accrue(series, base_year, adoption, risk)
    return series
