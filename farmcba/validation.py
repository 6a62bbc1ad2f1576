"""
Input checks and loading of plain records into an EvaluationRequest.
Only malformed or missing required input is rejected here; degenerate but
well-formed input is reported by the evaluators as NoResults.
"""

from typing import Any, Dict, List

from .benefits import BenefitItem, benefit_from_record
from .errors import InputError
from .utils import (BCR_MODES, COST_TYPES, DEPRECIATION_METHODS, ConfigurationContext, Depreciation,
                    EvaluationRequest, OtherCostItem, OutputDefinition, Treatment)


def validate_request(req: EvaluationRequest) -> None:
    """
    Raise InputError if the request cannot be evaluated.

    Args:
        req: Request to check

    Raises:
        InputError: on a missing output catalog, unknown output references,
            unknown cost types or depreciation methods, or bad config values
    """
    if req.outputs is None:
        raise InputError('An output price catalog is required')
    if req.treatments is None:
        raise InputError('A treatment list is required')

    known = {o.id for o in req.outputs}
    if len(known) != len(req.outputs):
        raise InputError('Output ids must be unique')
    ids = [t.id for t in req.treatments]
    if len(set(ids)) != len(ids):
        raise InputError('Treatment ids must be unique')
    for t in req.treatments:
        missing = sorted(set(t.deltas) - known)
        if missing:
            raise InputError(f"Treatment {t.id!r} references unknown outputs: {', '.join(missing)}")

    for b in req.benefits:
        if not isinstance(b, BenefitItem):
            raise InputError(f'Benefit items must be BenefitItem variants, got {type(b).__name__}')
    for c in req.other_costs:
        if c.type not in COST_TYPES:
            raise InputError(f'Cost item {c.id!r}: unknown type {c.type!r}')
        if c.depreciation.method not in DEPRECIATION_METHODS:
            raise InputError(f'Cost item {c.id!r}: unknown depreciation method {c.depreciation.method!r}')

    cfg = req.config
    if cfg.bcr_mode not in BCR_MODES:
        raise InputError(f'Unknown BCR mode {cfg.bcr_mode!r}')
    if cfg.years < 0:
        raise InputError('Horizon cannot be negative')


def _treatment(rec: Dict[str, Any]) -> Treatment:
    return Treatment(
        id=str(rec['id']),
        name=rec.get('name', str(rec['id'])),
        area_ha=float(rec.get('area_ha', 0.0) or 0.0),
        is_control=bool(rec.get('is_control', False)),
        deltas={str(k): float(v or 0.0) for k, v in (rec.get('deltas') or {}).items()},
        materials_cost_per_ha=float(rec.get('materials_cost_per_ha', 0.0) or 0.0),
        services_cost_per_ha=float(rec.get('services_cost_per_ha', 0.0) or 0.0),
        labour_cost_per_ha=float(rec.get('labour_cost_per_ha', 0.0) or 0.0),
        capital_cost=float(rec.get('capital_cost', 0.0) or 0.0),
        constrained=bool(rec.get('constrained', True)),
    )


def _other_cost(rec: Dict[str, Any]) -> OtherCostItem:
    dep = rec.get('depreciation') or {}
    return OtherCostItem(
        id=str(rec['id']),
        type=rec.get('type', 'annual'),
        category=rec.get('category', ''),
        annual_amount=float(rec.get('annual_amount', 0.0) or 0.0),
        start_year=rec.get('start_year'),
        end_year=rec.get('end_year'),
        capital_amount=float(rec.get('capital_amount', 0.0) or 0.0),
        capital_year=rec.get('capital_year'),
        constrained=bool(rec.get('constrained', True)),
        depreciation=Depreciation(
            method=dep.get('method', 'none'),
            life_years=int(dep.get('life_years', 5) or 5),
            declining_rate_pct=float(dep.get('declining_rate_pct', 30.0) or 30.0),
        ),
        label=rec.get('label', ''),
    )


def load_request(payload: Dict[str, Any]) -> EvaluationRequest:
    """Build and validate a request from plain mappings (e.g. parsed JSON)."""
    if payload.get('outputs') is None:
        raise InputError('An output price catalog is required')
    try:
        outputs = [OutputDefinition(id=str(o['id']), name=o.get('name', str(o['id'])),
                                    unit=o.get('unit', ''), price_per_unit=float(o.get('price_per_unit', 0.0) or 0.0))
                   for o in payload['outputs']]
        treatments = [_treatment(t) for t in payload.get('treatments', [])]
        benefits: List[BenefitItem] = [benefit_from_record(b) for b in payload.get('benefits', [])]
        other_costs = [_other_cost(c) for c in payload.get('other_costs', [])]
    except InputError:
        raise
    except KeyError as e:
        raise InputError(f'Missing required field {e}') from e
    except (TypeError, ValueError) as e:
        raise InputError(str(e)) from e

    req = EvaluationRequest(
        outputs=outputs,
        treatments=treatments,
        benefits=benefits,
        other_costs=other_costs,
        config=ConfigurationContext.from_dict(payload.get('config') or {}),
        control_id=payload.get('control_id'),
    )
    validate_request(req)
    return req
