
import logging
from dataclasses import replace
from typing import List, Optional, Sequence, Union

from .finance import degenerate_reason, evaluate_treatment
from .ranking import resolve_control
from .utils import EvaluationRequest, NoResults, SensitivityRecord, is_defined
from .validation import validate_request

logger = logging.getLogger(__name__)


def with_price_multiplier(req: EvaluationRequest, multiplier: float) -> EvaluationRequest:
    """Copy of the request with every output price scaled."""
    outputs = [replace(o, price_per_unit=o.price_per_unit * multiplier) for o in req.outputs]
    return replace(req, outputs=outputs)


def sensitivity_grid(req: EvaluationRequest, discount_rates: Optional[Sequence[float]] = None,
                     price_multipliers: Optional[Sequence[float]] = None) -> Union[List[SensitivityRecord], NoResults]:
    """Best non-control treatment and the control's NPV for every
    (discount rate, price multiplier) pair. Adoption and risk stay at base."""
    validate_request(req)
    reason = degenerate_reason(req)
    if reason:
        return NoResults(reason)
    control = resolve_control(req.treatments, req.control_id)
    axes = req.config.sensitivity
    rates = axes.discount_rates if discount_rates is None else discount_rates
    mults = axes.price_multipliers if price_multipliers is None else price_multipliers

    others = [t for t in req.treatments if t.id != control.id]
    if not others:
        logger.info('Only the control treatment is present; sensitivity grid is empty')
        return []

    logger.info('Sensitivity grid: %d discount rates x %d price multipliers', len(rates), len(mults))
    records = []
    for r in rates:
        for m in mults:
            p = with_price_multiplier(req, m)
            ctrl = evaluate_treatment(p, control, r)
            combos = [(t, evaluate_treatment(p, t, r)) for t in others]
            best_t, best = max(combos, key=lambda tr: tr[1].npv if is_defined(tr[1].npv) else float('-inf'))
            records.append(SensitivityRecord(
                discount_rate_pct=r,
                price_multiplier=m,
                best_treatment_id=best_t.id,
                best_npv=best.npv,
                control_npv=ctrl.npv,
            ))
    return records
