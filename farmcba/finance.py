
import logging
import math
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import numpy_financial as npf

from .benefits import additional_benefits_series
from .costs import other_costs_series
from .utils import (CashflowSeries, ConfigurationContext, EvaluationRequest, EvaluationResult,
                    NoResults, Treatment, clamp)
from .validation import validate_request

logger = logging.getLogger(__name__)

IRR_LOW = -0.99
IRR_HIGH = 5.0
IRR_EXPANSIONS = 20
IRR_MAX_ITER = 80
IRR_TOL = 1e-8


def build_cash_flows(req: EvaluationRequest, treatments: Optional[List[Treatment]] = None,
                     adoption: Optional[float] = None, risk: Optional[float] = None,
                     include_ledgers: bool = True) -> CashflowSeries:
    """Benefit and cost series for the given treatments (all of them by default).

    Treatment benefits and operating costs land on years 1..N and capital
    on year 0. With ``include_ledgers`` the project-level benefit and cost
    items are added as well.
    """
    cfg = req.config
    n = cfg.years
    treatments = req.treatments if treatments is None else treatments
    adopt = clamp(cfg.adoption.base if adoption is None else adoption, 0.0, 1.0)
    rsk = clamp(cfg.risk.base if risk is None else risk, 0.0, 1.0)
    prices = req.output_prices()

    benefit = [0.0] * (n + 1)
    cost = [0.0] * (n + 1)
    constrained = [0.0] * (n + 1)

    annual_benefit = 0.0
    annual_cost = 0.0
    constr_annual_cost = 0.0
    for t in treatments:
        value_per_ha = sum(q * prices[oid] for oid, q in t.deltas.items())
        annual_benefit += value_per_ha * t.area_ha * (1.0 - rsk) * adopt
        op_cost = t.annual_cost_per_ha * t.area_ha
        annual_cost += op_cost
        cost[0] += t.capital_cost
        if t.constrained:
            constr_annual_cost += op_cost
            constrained[0] += t.capital_cost

    for y in range(1, n + 1):
        benefit[y] += annual_benefit
        cost[y] += annual_cost
        constrained[y] += constr_annual_cost

    if include_ledgers:
        other, other_constr = other_costs_series(req.other_costs, n, cfg.start_year)
        extra = additional_benefits_series(req.benefits, n, cfg.start_year, adopt, rsk)
        for y in range(n + 1):
            cost[y] += other[y]
            constrained[y] += other_constr[y]
            benefit[y] += extra[y]

    return CashflowSeries(benefit, cost, constrained,
                          annual_benefit=annual_benefit, annual_treatment_cost=annual_cost)


def present_value(series: Sequence[float], rate_pct: float) -> float:
    return float(npf.npv(rate_pct / 100.0, list(series)))


def discounted_metrics(cf: CashflowSeries, rate_pct: float, bcr_mode: str = 'all') -> Dict[str, Optional[float]]:
    pv_b = present_value(cf.benefit_by_year, rate_pct)
    pv_c = present_value(cf.cost_by_year, rate_pct)
    pv_cc = present_value(cf.constrained_cost_by_year, rate_pct)
    npv = pv_b - pv_c
    denom = pv_cc if bcr_mode == 'constrained' else pv_c
    return {
        'pv_benefits': pv_b,
        'pv_costs': pv_c,
        'pv_costs_constrained': pv_cc,
        'npv': npv,
        'bcr': pv_b / denom if denom > 0 else None,
        'roi_pct': 100.0 * npv / pv_c if pv_c > 0 else None,
    }


def _npv_at(cf: Sequence[float], rate: float) -> float:
    # near the -99% floor long series overflow to +-inf; only the sign is used
    with np.errstate(over='ignore', divide='ignore', invalid='ignore'):
        return float(npf.npv(rate, list(cf)))


def irr(cf: Sequence[float]) -> Optional[float]:
    """IRR in percent by bracketed bisection, or None.

    Only the first root inside the bracket is found; series with several
    sign changes may have other roots.
    """
    if not (any(v > 0 for v in cf) and any(v < 0 for v in cf)):
        return None
    lo, hi = IRR_LOW, IRR_HIGH
    s_lo, s_hi = np.sign(_npv_at(cf, lo)), np.sign(_npv_at(cf, hi))
    if math.isnan(s_lo) or math.isnan(s_hi):
        return None
    if s_lo * s_hi > 0:
        for _ in range(IRR_EXPANSIONS):
            hi *= 1.5
            s_hi = np.sign(_npv_at(cf, hi))
            if s_lo * s_hi <= 0:
                break
        else:
            logger.warning('IRR bracket not found up to %.1f%%; IRR undefined', hi * 100)
            return None

    for _ in range(IRR_MAX_ITER):
        mid = (lo + hi) / 2
        n_mid = _npv_at(cf, mid)
        if math.isnan(n_mid):
            return None
        if abs(n_mid) < IRR_TOL:
            return mid * 100
        if s_lo * np.sign(n_mid) <= 0:
            hi = mid
        else:
            lo, s_lo = mid, np.sign(n_mid)
    # the bracket has collapsed to float resolution by now
    return (lo + hi) / 2 * 100


def mirr(cf: Sequence[float], finance_rate_pct: float, reinvest_rate_pct: float) -> Optional[float]:
    n = len(cf) - 1
    if n < 1:
        return None
    fr = finance_rate_pct / 100.0
    rr = reinvest_rate_pct / 100.0
    pv_neg = sum(v / (1 + fr) ** t for t, v in enumerate(cf) if v < 0)
    fv_pos = sum(v * (1 + rr) ** (n - t) for t, v in enumerate(cf) if v > 0)
    if pv_neg == 0:
        return None
    return ((-fv_pos / pv_neg) ** (1.0 / n) - 1) * 100


def payback(cf: Sequence[float], rate_pct: float) -> Optional[int]:
    """First year index where discounted cumulative net flow is >= 0."""
    cum = 0.0
    for t, v in enumerate(cf):
        cum += v / (1 + rate_pct / 100.0) ** t
        if cum >= 0:
            return t
    return None


def evaluate(cf: CashflowSeries, cfg: ConfigurationContext, rate_pct: float) -> EvaluationResult:
    m = discounted_metrics(cf, rate_pct, cfg.bcr_mode)
    net = cf.net
    gm = cf.annual_benefit - cf.annual_treatment_cost
    year1 = cf.benefit_by_year[1] if cf.years >= 1 else 0.0
    return EvaluationResult(
        pv_benefits=m['pv_benefits'],
        pv_costs=m['pv_costs'],
        pv_costs_constrained=m['pv_costs_constrained'],
        npv=m['npv'],
        bcr=m['bcr'],
        irr_pct=irr(net),
        mirr_pct=mirr(net, cfg.mirr_finance_pct, cfg.mirr_reinvest_pct),
        roi_pct=m['roi_pct'],
        payback_year=payback(net, rate_pct),
        annual_gross_margin=gm,
        profit_margin_pct=gm / year1 * 100 if year1 > 0 else None,
        cashflows=cf,
    )


def degenerate_reason(req: EvaluationRequest) -> Optional[str]:
    if not req.treatments:
        return 'no treatments'
    if req.config.years < 1:
        return 'horizon shorter than one year'
    return None


def evaluate_project(req: EvaluationRequest, rate_pct: Optional[float] = None,
                     adoption: Optional[float] = None, risk: Optional[float] = None) -> Union[EvaluationResult, NoResults]:
    """Whole-project result: all treatments plus benefit and cost ledgers."""
    validate_request(req)
    reason = degenerate_reason(req)
    if reason:
        return NoResults(reason)
    rate = req.config.discount.base if rate_pct is None else rate_pct
    cf = build_cash_flows(req, adoption=adoption, risk=risk)
    return evaluate(cf, req.config, rate)


def evaluate_treatment(req: EvaluationRequest, treatment: Treatment, rate_pct: Optional[float] = None,
                       adoption: Optional[float] = None, risk: Optional[float] = None) -> EvaluationResult:
    """Single-treatment result; project-level ledgers are left out."""
    rate = req.config.discount.base if rate_pct is None else rate_pct
    cf = build_cash_flows(req, [treatment], adoption=adoption, risk=risk, include_ledgers=False)
    return evaluate(cf, req.config, rate)


def time_projections(cf: CashflowSeries, rate_pct: float, horizons: Sequence[int]) -> List[Dict]:
    """PV, NPV and BCR of the series cut at each horizon (clipped to N)."""
    rows = []
    seen = set()
    for h in horizons:
        h = min(int(h), cf.years)
        if h <= 0 or h in seen:
            continue
        seen.add(h)
        part = cf.truncated(h)
        pv_b = present_value(part.benefit_by_year, rate_pct)
        pv_c = present_value(part.cost_by_year, rate_pct)
        rows.append({
            'years': h,
            'pv_benefits': pv_b,
            'pv_costs': pv_c,
            'npv': pv_b - pv_c,
            'bcr': pv_b / pv_c if pv_c > 0 else None,
        })
    return rows
