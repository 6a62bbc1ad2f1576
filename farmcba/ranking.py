
from dataclasses import dataclass
from typing import List, Optional, Union

from .errors import MissingControlError
from .finance import build_cash_flows, degenerate_reason, evaluate, evaluate_treatment
from .utils import EvaluationRequest, EvaluationResult, NoResults, Treatment, is_defined
from .validation import validate_request


@dataclass
class RankedTreatment:
    treatment_id: str
    name: str
    is_control: bool
    rank: int
    result: EvaluationResult
    delta_npv: Optional[float] = None  # vs control; None for the control itself
    delta_pv_costs: Optional[float] = None


@dataclass
class GroupComparison:
    control: EvaluationResult
    group: Optional[EvaluationResult]  # None when every treatment is the control


def resolve_control(treatments: List[Treatment], control_id: Optional[str] = None) -> Treatment:
    """Return the single control treatment or raise MissingControlError.

    An explicit ``control_id`` must name a treatment and must not
    contradict another treatment's control flag; without it exactly one
    treatment must be flagged.
    """
    flagged = [t for t in treatments if t.is_control]
    if control_id is not None:
        match = [t for t in treatments if t.id == control_id]
        if not match:
            raise MissingControlError(f'Control {control_id!r} is not a known treatment')
        others = [t.id for t in flagged if t.id != control_id]
        if others:
            raise MissingControlError(f"Control {control_id!r} conflicts with flagged control(s): {', '.join(others)}")
        return match[0]
    if not flagged:
        raise MissingControlError('No control treatment designated')
    if len(flagged) > 1:
        raise MissingControlError(f"More than one control treatment: {', '.join(t.id for t in flagged)}")
    return flagged[0]


def _diff(a: float, b: float) -> Optional[float]:
    return a - b if is_defined(a) and is_defined(b) else None


def rank_treatments(req: EvaluationRequest, rate_pct: Optional[float] = None, adoption: Optional[float] = None,
                    risk: Optional[float] = None) -> Union[List[RankedTreatment], NoResults]:
    """Rank every treatment by NPV (descending, dense ranks) at one scenario."""
    validate_request(req)
    reason = degenerate_reason(req)
    if reason:
        return NoResults(reason)
    control = resolve_control(req.treatments, req.control_id)

    evaluated = [(t, evaluate_treatment(req, t, rate_pct, adoption, risk)) for t in req.treatments]
    ctrl = next(r for t, r in evaluated if t.id == control.id)
    # undefined NPVs go last; sort is stable so input order breaks ties
    evaluated.sort(key=lambda tr: (0, -tr[1].npv) if is_defined(tr[1].npv) else (1, 0.0))

    ranked = []
    rank = 0
    prev = object()
    for t, res in evaluated:
        key = res.npv if is_defined(res.npv) else None
        if key != prev:
            rank += 1
            prev = key
        is_ctrl = t.id == control.id
        ranked.append(RankedTreatment(
            treatment_id=t.id,
            name=t.name,
            is_control=is_ctrl,
            rank=rank,
            result=res,
            delta_npv=None if is_ctrl else _diff(res.npv, ctrl.npv),
            delta_pv_costs=None if is_ctrl else _diff(res.pv_costs, ctrl.pv_costs),
        ))
    return ranked


def compare_control_and_group(req: EvaluationRequest, rate_pct: Optional[float] = None,
                              adoption: Optional[float] = None,
                              risk: Optional[float] = None) -> Union[GroupComparison, NoResults]:
    """Control on its own against all non-control treatments pooled together."""
    validate_request(req)
    reason = degenerate_reason(req)
    if reason:
        return NoResults(reason)
    control = resolve_control(req.treatments, req.control_id)
    rate = req.config.discount.base if rate_pct is None else rate_pct

    ctrl = evaluate_treatment(req, control, rate, adoption, risk)
    rest = [t for t in req.treatments if t.id != control.id]
    group = None
    if rest:
        cf = build_cash_flows(req, rest, adoption=adoption, risk=risk, include_ledgers=False)
        group = evaluate(cf, req.config, rate)
    return GroupComparison(control=ctrl, group=group)
