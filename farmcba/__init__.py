"""Cost-benefit evaluation of trial treatments against a control."""

from .benefits import benefit_from_record
from .errors import CBAError, InputError, MissingControlError
from .finance import build_cash_flows, evaluate_project, evaluate_treatment, irr, mirr, payback, present_value
from .ranking import compare_control_and_group, rank_treatments, resolve_control
from .sensitivity import sensitivity_grid
from .simulation import MonteCarloSimulator, Mulberry32
from .utils import ConfigurationContext, EvaluationRequest, NoResults
from .validation import load_request

__all__ = [
    'benefit_from_record',
    'CBAError',
    'InputError',
    'MissingControlError',
    'build_cash_flows',
    'evaluate_project',
    'evaluate_treatment',
    'irr',
    'mirr',
    'payback',
    'present_value',
    'compare_control_and_group',
    'rank_treatments',
    'resolve_control',
    'sensitivity_grid',
    'MonteCarloSimulator',
    'Mulberry32',
    'ConfigurationContext',
    'EvaluationRequest',
    'NoResults',
    'load_request',
]
