"""Monte Carlo simulation of whole-project NPV and BCR.

Discount rate, adoption and risk are drawn from triangular distributions
(low, base, high); output prices and costs optionally get uniform
multiplicative shocks. Draws come from a ``RandomSource``; the default
``Mulberry32`` generator reproduces the same sequence for the same seed.
"""

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence, Union

import numpy as np

from .errors import CBAError, InputError
from .finance import build_cash_flows, degenerate_reason, evaluate
from .utils import EvaluationRequest, NoResults, SimulationRecord, clamp
from .validation import validate_request

logger = logging.getLogger(__name__)

IDLE = 'idle'
RUNNING = 'running'
COMPLETE = 'complete'
CANCELLED = 'cancelled'


class RandomSource(Protocol):
    def random(self) -> float:
        """Next uniform draw in [0, 1)."""


class Mulberry32:
    """32-bit multiply-xorshift generator; same seed, same sequence."""

    def __init__(self, seed: int):
        self._t = seed & 0xFFFFFFFF

    def random(self) -> float:
        self._t = (self._t + 0x6D2B79F5) & 0xFFFFFFFF
        x = self._t
        x = ((x ^ (x >> 15)) * (x | 1)) & 0xFFFFFFFF
        x ^= (x + (((x ^ (x >> 7)) * (x | 61)) & 0xFFFFFFFF)) & 0xFFFFFFFF
        return ((x ^ (x >> 14)) & 0xFFFFFFFF) / 4294967296.0


class NumpySource:
    """numpy ``default_rng`` behind the RandomSource interface."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def random(self) -> float:
        return float(self._rng.random())


def triangular(u: float, low: float, mode: float, high: float) -> float:
    """Inverse CDF of the triangular distribution at ``u``."""
    if high == low:
        return low
    f = (mode - low) / (high - low)
    if u < f:
        return low + math.sqrt(u * (high - low) * (mode - low))
    return high - math.sqrt((1 - u) * (high - low) * (high - mode))


@dataclass
class SummaryStats:
    min: Optional[float]
    max: Optional[float]
    mean: Optional[float]
    median: Optional[float]
    prob_positive: Optional[float]
    count: int = 0  # finite results
    undefined: int = 0


@dataclass
class BcrSummary(SummaryStats):
    prob_above_one: Optional[float] = None
    prob_above_target: Optional[float] = None
    target: float = 0.0


@dataclass
class Histogram:
    edges: List[float]
    counts: List[int]


@dataclass
class SimulationResult:
    records: List[SimulationRecord]
    npv: SummaryStats
    bcr: BcrSummary
    npv_histogram: Histogram
    bcr_histogram: Histogram
    runs: int
    seed: Optional[int]
    cancelled: bool = False

    @property
    def completed_runs(self) -> int:
        return len(self.records)


def _as_array(values: Sequence[Optional[float]]) -> np.ndarray:
    return np.array([np.nan if v is None else v for v in values], dtype=float)


def summarize(values: Sequence[Optional[float]]) -> SummaryStats:
    arr = _as_array(values)
    finite = arr[np.isfinite(arr)]
    undefined = int(arr.size - finite.size)
    if finite.size == 0:
        return SummaryStats(None, None, None, None, None, count=0, undefined=undefined)
    return SummaryStats(
        min=float(finite.min()),
        max=float(finite.max()),
        mean=float(finite.mean()),
        median=float(np.median(finite)),
        prob_positive=float(np.mean(finite > 0)),
        count=int(finite.size),
        undefined=undefined,
    )


def summarize_bcr(values: Sequence[Optional[float]], target: float) -> BcrSummary:
    """Summary stats over finite BCRs; threshold probabilities are over all runs."""
    s = summarize(values)
    arr = _as_array(values)
    total = arr.size
    finite = arr[np.isfinite(arr)]
    return BcrSummary(
        **s.__dict__,
        prob_above_one=float(np.sum(finite > 1.0)) / total if total else None,
        prob_above_target=float(np.sum(finite > target)) / total if total else None,
        target=target,
    )


def histogram(values: Sequence[Optional[float]], bins: int = 20) -> Histogram:
    """Equal-width bins over the finite range. A single repeated value
    falls in the middle bin of a unit-wide range around it."""
    arr = _as_array(values)
    finite = arr[np.isfinite(arr)]
    if finite.size == 0:
        return Histogram(edges=[], counts=[0] * bins)
    counts, edges = np.histogram(finite, bins=bins)
    return Histogram(edges=[float(e) for e in edges], counts=[int(c) for c in counts])


class PerturbationScope:
    """Context manager that shocks prices and costs of a request relative to
    their values on entry and puts the exact originals back on exit."""

    def __init__(self, req: EvaluationRequest):
        self.req = req

    def __enter__(self):
        r = self.req
        self._prices = [o.price_per_unit for o in r.outputs]
        self._treat = [(t.materials_cost_per_ha, t.services_cost_per_ha, t.labour_cost_per_ha)
                       for t in r.treatments]
        self._other = [(c.annual_amount, c.capital_amount) for c in r.other_costs]
        return self

    def apply(self, price_shock: float = 1.0, treatment_shock: float = 1.0, other_shock: float = 1.0) -> None:
        r = self.req
        for o, p in zip(r.outputs, self._prices):
            o.price_per_unit = p * price_shock
        for t, (m, s, lab) in zip(r.treatments, self._treat):
            t.materials_cost_per_ha = m * treatment_shock
            t.services_cost_per_ha = s * treatment_shock
            t.labour_cost_per_ha = lab * treatment_shock
        for c, (a, cap) in zip(r.other_costs, self._other):
            c.annual_amount = a * other_shock
            c.capital_amount = cap * other_shock

    def __exit__(self, exc_type, exc, tb):
        r = self.req
        for o, p in zip(r.outputs, self._prices):
            o.price_per_unit = p
        for t, (m, s, lab) in zip(r.treatments, self._treat):
            t.materials_cost_per_ha, t.services_cost_per_ha, t.labour_cost_per_ha = m, s, lab
        for c, (a, cap) in zip(r.other_costs, self._other):
            c.annual_amount, c.capital_amount = a, cap
        return False


@dataclass
class MonteCarloSimulator:
    """Runs the simulation against a private copy of the request.

    The caller's request is never modified. ``on_progress(done, total)``
    is called after every ``batch_size`` runs; calling ``cancel()`` from it
    stops the run before the next draw.
    """
    source_factory: Callable[[int], RandomSource] = Mulberry32
    on_progress: Optional[Callable[[int, int], None]] = None
    state: str = field(default=IDLE, init=False)
    _cancel: bool = field(default=False, init=False, repr=False)

    def cancel(self) -> None:
        if self.state == RUNNING:
            self._cancel = True

    def run(self, req: EvaluationRequest, runs: Optional[int] = None,
            seed: Optional[int] = None) -> Union[SimulationResult, NoResults]:
        if self.state == RUNNING:
            raise CBAError('A simulation is already running on this simulator')
        validate_request(req)
        reason = degenerate_reason(req)
        if reason:
            return NoResults(reason)

        settings = req.config.simulation
        runs = settings.runs if runs is None else runs
        if runs < 1:
            raise InputError('Simulation needs at least one run')
        seed = settings.seed if seed is None else seed
        if seed is None:
            seed = int(np.random.default_rng().integers(1, 2 ** 31))
        rand = self.source_factory(seed).random

        work = copy.deepcopy(req)
        cfg = work.config
        var = settings.variation_pct / 100.0
        batch = max(1, settings.batch_size)
        records = []

        self.state = RUNNING
        self._cancel = False
        logger.info('Starting Monte Carlo simulation: %d runs, seed %s', runs, seed)
        try:
            with PerturbationScope(work) as scope:
                for i in range(runs):
                    if self._cancel:
                        break
                    u1, u2, u3 = rand(), rand(), rand()
                    disc = triangular(u1, cfg.discount.low, cfg.discount.base, cfg.discount.high)
                    adopt = clamp(triangular(u2, cfg.adoption.low, cfg.adoption.base, cfg.adoption.high), 0.0, 1.0)
                    risk = clamp(triangular(u3, cfg.risk.low, cfg.risk.base, cfg.risk.high), 0.0, 1.0)

                    price_shock = 1 + (rand() * 2 * var - var) if settings.vary_outputs else 1.0
                    treat_shock = 1 + (rand() * 2 * var - var) if settings.vary_treatment_costs else 1.0
                    other_shock = 1 + (rand() * 2 * var - var) if settings.vary_other_costs else 1.0
                    scope.apply(price_shock, treat_shock, other_shock)

                    res = evaluate(build_cash_flows(work, adoption=adopt, risk=risk), cfg, disc)
                    records.append(SimulationRecord(disc, adopt, risk, res.npv, res.bcr))

                    if (i + 1) % batch == 0:
                        logger.debug('Simulation progress: %d/%d', i + 1, runs)
                        if self.on_progress is not None:
                            self.on_progress(i + 1, runs)
        except Exception:
            self.state = IDLE
            raise

        cancelled = self._cancel
        self._cancel = False
        self.state = CANCELLED if cancelled else COMPLETE

        npvs = [r.npv for r in records]
        bcrs = [r.bcr for r in records]
        bins = settings.histogram_bins
        result = SimulationResult(
            records=records,
            npv=summarize(npvs),
            bcr=summarize_bcr(bcrs, settings.target_bcr),
            npv_histogram=histogram(npvs, bins),
            bcr_histogram=histogram(bcrs, bins),
            runs=runs,
            seed=seed,
            cancelled=cancelled,
        )
        if result.bcr.undefined:
            logger.warning('%d of %d runs had an undefined BCR', result.bcr.undefined, len(records))
        logger.info('Simulation %s after %d runs; mean NPV %s', self.state, len(records), result.npv.mean)
        return result
