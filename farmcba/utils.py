
import math
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from .errors import InputError

BCR_MODES = ('all', 'constrained')
COST_TYPES = ('annual', 'capital')
DEPRECIATION_METHODS = ('none', 'straight_line', 'declining_balance')


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def is_defined(v) -> bool:
    """True for a finite number; None and nan/inf are undefined."""
    return v is not None and math.isfinite(v)


@dataclass
class OutputDefinition:
    id: str
    name: str
    unit: str = ''
    price_per_unit: float = 0.0


@dataclass
class Treatment:
    id: str
    name: str
    area_ha: float = 0.0
    is_control: bool = False
    deltas: Dict[str, float] = field(default_factory=dict)  # output id -> quantity change per ha
    materials_cost_per_ha: float = 0.0
    services_cost_per_ha: float = 0.0
    labour_cost_per_ha: float = 0.0
    capital_cost: float = 0.0
    constrained: bool = True

    @property
    def annual_cost_per_ha(self) -> float:
        return self.materials_cost_per_ha + self.services_cost_per_ha + self.labour_cost_per_ha


@dataclass
class Depreciation:
    method: str = 'none'
    life_years: int = 5
    declining_rate_pct: float = 30.0


@dataclass
class OtherCostItem:
    id: str
    type: str = 'annual'
    category: str = ''
    annual_amount: float = 0.0
    start_year: Optional[int] = None  # calendar years; None means the horizon's start year
    end_year: Optional[int] = None
    capital_amount: float = 0.0
    capital_year: Optional[int] = None
    constrained: bool = True
    depreciation: Depreciation = field(default_factory=Depreciation)
    label: str = ''


@dataclass
class ScenarioRange:
    low: float
    base: float
    high: float


@dataclass
class SimulationSettings:
    runs: int = 1000
    seed: Optional[int] = None
    variation_pct: float = 20.0
    vary_outputs: bool = True
    vary_treatment_costs: bool = True
    vary_other_costs: bool = False
    target_bcr: float = 2.0
    histogram_bins: int = 20
    batch_size: int = 250


@dataclass
class SensitivityAxes:
    discount_rates: Tuple[float, ...] = (4.0, 7.0, 10.0)
    price_multipliers: Tuple[float, ...] = (0.8, 1.0, 1.2)


@dataclass
class ConfigurationContext:
    years: int = 10
    start_year: int = field(default_factory=lambda: date.today().year)
    discount: ScenarioRange = field(default_factory=lambda: ScenarioRange(4.0, 7.0, 10.0))  # percent
    adoption: ScenarioRange = field(default_factory=lambda: ScenarioRange(0.6, 0.9, 1.0))
    risk: ScenarioRange = field(default_factory=lambda: ScenarioRange(0.05, 0.15, 0.30))
    mirr_finance_pct: float = 6.0
    mirr_reinvest_pct: float = 4.0
    bcr_mode: str = 'all'
    simulation: SimulationSettings = field(default_factory=SimulationSettings)
    sensitivity: SensitivityAxes = field(default_factory=SensitivityAxes)
    projection_horizons: Tuple[int, ...] = (5, 10, 15, 20, 25)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfigurationContext':
        """Build a context from a nested mapping, e.g. parsed JSON.

        Sub-mappings under ``discount``, ``adoption``, ``risk``,
        ``simulation`` and ``sensitivity`` fill the matching parts; keys
        left out keep their defaults.
        """
        kw = dict(data)
        for key in ('discount', 'adoption', 'risk'):
            if key in kw and isinstance(kw[key], dict):
                kw[key] = _build(ScenarioRange, kw[key])
        if isinstance(kw.get('simulation'), dict):
            kw['simulation'] = _build(SimulationSettings, kw['simulation'])
        if isinstance(kw.get('sensitivity'), dict):
            sens = {k: tuple(v) for k, v in kw['sensitivity'].items()}
            kw['sensitivity'] = _build(SensitivityAxes, sens)
        if 'projection_horizons' in kw:
            kw['projection_horizons'] = tuple(int(h) for h in kw['projection_horizons'])
        return _build(cls, kw)


def _build(cls, data: Dict[str, Any]):
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        raise InputError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")
    try:
        return cls(**data)
    except TypeError as e:
        raise InputError(f"Invalid {cls.__name__}: {e}") from e


@dataclass
class EvaluationRequest:
    """Everything one evaluation run needs, passed explicitly."""
    outputs: List[OutputDefinition]
    treatments: List[Treatment]
    benefits: List[Any] = field(default_factory=list)  # benefits.BenefitItem variants
    other_costs: List[OtherCostItem] = field(default_factory=list)
    config: ConfigurationContext = field(default_factory=ConfigurationContext)
    control_id: Optional[str] = None

    def output_prices(self) -> Dict[str, float]:
        return {o.id: o.price_per_unit for o in self.outputs}


@dataclass
class CashflowSeries:
    """Year-indexed flows; index 0 is year zero, 1..N the operating years."""
    benefit_by_year: List[float]
    cost_by_year: List[float]
    constrained_cost_by_year: List[float]
    annual_benefit: float = 0.0  # treatment benefit in each operating year
    annual_treatment_cost: float = 0.0

    @property
    def years(self) -> int:
        return len(self.benefit_by_year) - 1

    @property
    def net(self) -> List[float]:
        return [b - c for b, c in zip(self.benefit_by_year, self.cost_by_year)]

    def truncated(self, years: int) -> 'CashflowSeries':
        n = years + 1
        return CashflowSeries(self.benefit_by_year[:n], self.cost_by_year[:n],
                              self.constrained_cost_by_year[:n],
                              self.annual_benefit, self.annual_treatment_cost)


@dataclass
class EvaluationResult:
    pv_benefits: float
    pv_costs: float
    pv_costs_constrained: float
    npv: float
    bcr: Optional[float]
    irr_pct: Optional[float]
    mirr_pct: Optional[float]
    roi_pct: Optional[float]
    payback_year: Optional[int]  # None: not reached within the horizon
    annual_gross_margin: float = 0.0
    profit_margin_pct: Optional[float] = None
    cashflows: Optional[CashflowSeries] = None


@dataclass
class NoResults:
    """Degenerate input; distinct from a zero-valued result."""
    reason: str


@dataclass
class SimulationRecord:
    discount_rate_pct: float
    adoption_multiplier: float
    risk_multiplier: float
    npv: float
    bcr: Optional[float]


@dataclass
class SensitivityRecord:
    discount_rate_pct: float
    price_multiplier: float
    best_treatment_id: str
    best_npv: float
    control_npv: float
