"""pandas views of engine results for rendering and export."""

from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .costs import DepreciationSchedule
from .ranking import RankedTreatment
from .simulation import Histogram, SimulationResult
from .utils import CashflowSeries, SensitivityRecord


def _num(v: Optional[float]) -> float:
    return np.nan if v is None else v


def annual_frame(cf: CashflowSeries, start_year: Optional[int] = None) -> pd.DataFrame:
    net = cf.net
    df = pd.DataFrame({
        'year': list(range(cf.years + 1)),
        'benefit': cf.benefit_by_year,
        'cost': cf.cost_by_year,
        'constrained_cost': cf.constrained_cost_by_year,
        'net': net,
    })
    df['cumulative_net'] = df['net'].cumsum()
    if start_year is not None:
        df.insert(1, 'calendar_year', df['year'] + start_year)
    return df


def ranking_frame(ranked: List[RankedTreatment]) -> pd.DataFrame:
    rows = []
    for r in ranked:
        res = r.result
        rows.append({
            'rank': r.rank,
            'treatment_id': r.treatment_id,
            'name': r.name,
            'is_control': r.is_control,
            'pv_benefits': res.pv_benefits,
            'pv_costs': res.pv_costs,
            'npv': res.npv,
            'bcr': _num(res.bcr),
            'irr_pct': _num(res.irr_pct),
            'mirr_pct': _num(res.mirr_pct),
            'roi_pct': _num(res.roi_pct),
            'payback_year': _num(res.payback_year),
            'delta_npv': _num(r.delta_npv),
            'delta_pv_costs': _num(r.delta_pv_costs),
        })
    return pd.DataFrame(rows)


def simulation_frame(result: SimulationResult) -> pd.DataFrame:
    return pd.DataFrame([{
        'run': i + 1,
        'discount_rate_pct': rec.discount_rate_pct,
        'adoption_multiplier': rec.adoption_multiplier,
        'risk_multiplier': rec.risk_multiplier,
        'npv': rec.npv,
        'bcr': _num(rec.bcr),
    } for i, rec in enumerate(result.records)],
        columns=['run', 'discount_rate_pct', 'adoption_multiplier', 'risk_multiplier', 'npv', 'bcr'])


def histogram_frame(h: Histogram) -> pd.DataFrame:
    if not h.edges:
        return pd.DataFrame(columns=['bin_start', 'bin_end', 'count'])
    return pd.DataFrame({'bin_start': h.edges[:-1], 'bin_end': h.edges[1:], 'count': h.counts})


def sensitivity_frame(records: List[SensitivityRecord]) -> pd.DataFrame:
    df = pd.DataFrame([r.__dict__ for r in records],
                      columns=['discount_rate_pct', 'price_multiplier', 'best_treatment_id', 'best_npv', 'control_npv'])
    df['best_minus_control'] = df['best_npv'] - df['control_npv']
    return df


def projection_frame(rows: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=['years', 'pv_benefits', 'pv_costs', 'npv', 'bcr'])
    df['bcr'] = df['bcr'].astype(float)
    return df


def depreciation_frame(schedules: List[DepreciationSchedule], start_year: int) -> pd.DataFrame:
    """One row per item, one column per calendar year."""
    if not schedules:
        return pd.DataFrame()
    years = len(schedules[0].by_year)
    df = pd.DataFrame([s.by_year for s in schedules],
                      index=[s.label or s.item_id for s in schedules],
                      columns=[start_year + i for i in range(years)])
    df.loc['Total'] = df.sum(axis=0)
    return df
