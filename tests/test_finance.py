"""Cash flow construction and discounted indicators, checked against
hand-computed values."""

import warnings

import pytest

from conftest import flat_config
from farmcba.errors import InputError
from farmcba.finance import (build_cash_flows, discounted_metrics, evaluate_project, evaluate_treatment, irr,
                             mirr, payback, present_value, time_projections)
from farmcba.utils import EvaluationRequest, NoResults, OtherCostItem, OutputDefinition, Treatment


# ---- Present value ----

class TestPresentValue:
    def test_zero_rate_is_simple_sum(self):
        series = [-1000.0, 300.0, 250.5, 410.0, 12.25]
        assert present_value(series, 0.0) == pytest.approx(sum(series))

    def test_known_value(self):
        """[-1000, 500, 500, 500] at 10% is ~243.43."""
        assert present_value([-1000, 500, 500, 500], 10.0) == pytest.approx(243.43, abs=0.01)

    def test_year_zero_is_undiscounted(self):
        assert present_value([-5000.0], 7.0) == pytest.approx(-5000.0)


# ---- Worked scenarios ----

class TestScenarios:
    def test_one_year_zero_rate(self, simple_request):
        res = evaluate_project(simple_request, rate_pct=0.0)
        assert res.pv_benefits == pytest.approx(100.0)
        assert res.pv_costs == pytest.approx(40.0)
        assert res.npv == pytest.approx(60.0)
        assert res.bcr == pytest.approx(2.5)
        assert res.roi_pct == pytest.approx(150.0)

    def test_capital_at_year_zero(self, simple_request):
        simple_request.treatments[0].capital_cost = 200.0
        simple_request.config.years = 2
        res = evaluate_project(simple_request, rate_pct=10.0)
        assert res.pv_costs == pytest.approx(200 + 40 / 1.1 + 40 / 1.21)
        assert res.pv_benefits == pytest.approx(100 / 1.1 + 100 / 1.21)
        assert res.cashflows.cost_by_year == pytest.approx([200.0, 40.0, 40.0])

    def test_gross_and_profit_margin(self, simple_request):
        res = evaluate_project(simple_request, rate_pct=0.0)
        assert res.annual_gross_margin == pytest.approx(60.0)
        assert res.profit_margin_pct == pytest.approx(60.0)

    def test_bcr_above_one_iff_npv_positive(self, trial_request):
        for rate in (0.0, 4.0, 7.0, 15.0, 40.0):
            for t in trial_request.treatments:
                res = evaluate_treatment(trial_request, t, rate)
                if res.pv_costs > 0:
                    assert (res.bcr > 1) == (res.npv > 0)


# ---- Undefined ratios ----

class TestUndefinedRatios:
    def test_no_costs_means_undefined_bcr_and_roi(self, simple_request):
        simple_request.treatments[0].labour_cost_per_ha = 0.0
        res = evaluate_project(simple_request, rate_pct=0.0)
        assert res.bcr is None
        assert res.roi_pct is None
        assert res.npv == pytest.approx(100.0)

    def test_constrained_mode_uses_constrained_costs(self, simple_request):
        simple_request.treatments[0].constrained = False
        simple_request.other_costs = [OtherCostItem('mgmt', type='annual', annual_amount=10.0,
                                                    start_year=2025, end_year=2025, constrained=True)]
        simple_request.config.bcr_mode = 'constrained'
        res = evaluate_project(simple_request, rate_pct=0.0)
        assert res.pv_costs == pytest.approx(50.0)
        assert res.pv_costs_constrained == pytest.approx(10.0)
        assert res.bcr == pytest.approx(10.0)
        assert res.roi_pct == pytest.approx(100.0)

    def test_constrained_mode_without_constrained_costs(self, simple_request):
        simple_request.treatments[0].constrained = False
        simple_request.config.bcr_mode = 'constrained'
        res = evaluate_project(simple_request, rate_pct=0.0)
        assert res.bcr is None
        assert res.roi_pct == pytest.approx(150.0)

    def test_metrics_dict(self, simple_request):
        cf = build_cash_flows(simple_request)
        m = discounted_metrics(cf, 0.0)
        assert m['npv'] == pytest.approx(60.0)
        assert m['bcr'] == pytest.approx(2.5)


# ---- IRR ----

class TestIRR:
    def test_two_year_project(self):
        cf = [-100.0, 60.0, 60.0]
        rate = irr(cf)
        assert rate == pytest.approx(13.0662, abs=1e-3)
        assert present_value(cf, rate) == pytest.approx(0.0, abs=1e-6)

    def test_negative_irr(self):
        assert irr([-100.0, 10.0]) == pytest.approx(-90.0, abs=1e-6)

    def test_bracket_expansion(self):
        assert irr([-1.0, 100.0]) == pytest.approx(9900.0, rel=1e-6)

    def test_bracket_abandoned(self):
        assert irr([-1.0, 1e9]) is None

    def test_long_horizon_overflow_at_floor(self):
        # 100**t overflows at the -99% floor; the sign change is still bracketed
        cf = [-1000.0] + [100.0] * 160
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            rate = irr(cf)
        assert rate == pytest.approx(10.0, abs=1e-3)
        assert present_value(cf, rate) == pytest.approx(0.0, abs=1e-4)

    def test_no_sign_change(self):
        assert irr([0.0, 60.0, 60.0]) is None
        assert irr([-10.0, -5.0]) is None

    def test_project_irr_zeroes_npv(self, trial_request):
        res = evaluate_treatment(trial_request, trial_request.treatments[1])
        assert res.irr_pct is not None
        assert present_value(res.cashflows.net, res.irr_pct) == pytest.approx(0.0, abs=1e-6)


# ---- MIRR ----

class TestMIRR:
    def test_known_value(self):
        # fv of inflows at 4% = 60 * 1.04 + 60 = 122.4
        assert mirr([-100.0, 60.0, 60.0], 6.0, 4.0) == pytest.approx((1.224 ** 0.5 - 1) * 100)

    def test_scale_invariant(self):
        cf = [-250.0, -40.0, 90.0, 130.0, 160.0]
        base = mirr(cf, 6.0, 4.0)
        assert mirr([v * 37.5 for v in cf], 6.0, 4.0) == pytest.approx(base)

    def test_undefined_without_outflows(self):
        assert mirr([0.0, 10.0, 10.0], 6.0, 4.0) is None

    def test_undefined_without_operating_years(self):
        assert mirr([-10.0], 6.0, 4.0) is None


# ---- Payback ----

class TestPayback:
    def test_undiscounted(self):
        assert payback([-100.0, 60.0, 60.0], 0.0) == 2

    def test_discounting_delays_payback(self):
        assert payback([-100.0, 55.0, 55.0], 0.0) == 2
        assert payback([-100.0, 55.0, 55.0], 10.0) is None

    def test_immediate(self):
        assert payback([0.0, 10.0], 7.0) == 0


# ---- Cash flow construction ----

class TestCashflows:
    def test_adoption_and_risk_scale_treatment_benefit(self, simple_request):
        cf = build_cash_flows(simple_request, adoption=0.5, risk=0.2)
        assert cf.benefit_by_year == pytest.approx([0.0, 40.0])

    def test_multipliers_clamped(self, simple_request):
        cf = build_cash_flows(simple_request, adoption=1.7, risk=-0.3)
        assert cf.benefit_by_year == pytest.approx([0.0, 100.0])

    def test_capital_cost_items(self, simple_request):
        simple_request.config.years = 3
        simple_request.other_costs = [
            OtherCostItem('now', type='capital', capital_amount=500.0, capital_year=2025),
            OtherCostItem('later', type='capital', capital_amount=70.0, capital_year=2027),
            OtherCostItem('beyond', type='capital', capital_amount=999.0, capital_year=2030),
            OtherCostItem('before', type='capital', capital_amount=999.0, capital_year=2020),
        ]
        cf = build_cash_flows(simple_request)
        assert cf.cost_by_year == pytest.approx([500.0, 40.0, 110.0, 40.0])

    def test_annual_cost_window_clipped(self, simple_request):
        simple_request.config.years = 3
        simple_request.other_costs = [
            OtherCostItem('m', type='annual', annual_amount=5.0, start_year=2024, end_year=2030),
        ]
        cf = build_cash_flows(simple_request)
        # 2024 would be index 0 and is outside the operating years
        assert cf.cost_by_year == pytest.approx([0.0, 45.0, 45.0, 45.0])

    def test_ledgers_excluded_for_single_treatment(self, simple_request):
        simple_request.other_costs = [OtherCostItem('m', type='annual', annual_amount=5.0)]
        res = evaluate_treatment(simple_request, simple_request.treatments[0], 0.0)
        assert res.pv_costs == pytest.approx(40.0)
        assert evaluate_project(simple_request, 0.0).pv_costs == pytest.approx(45.0)


# ---- Degenerate and malformed input ----

class TestDegenerateInput:
    def test_no_treatments(self):
        req = EvaluationRequest(outputs=[], treatments=[], config=flat_config())
        assert evaluate_project(req) == NoResults('no treatments')

    def test_zero_horizon(self, simple_request):
        simple_request.config.years = 0
        assert isinstance(evaluate_project(simple_request), NoResults)

    def test_missing_output_catalog(self, simple_request):
        simple_request.outputs = None
        with pytest.raises(InputError):
            evaluate_project(simple_request)

    def test_unknown_output_reference(self, simple_request):
        simple_request.treatments.append(Treatment('t2', 'Other', deltas={'straw': 1.0}))
        with pytest.raises(InputError, match='straw'):
            evaluate_project(simple_request)

    def test_duplicate_output_ids(self, simple_request):
        simple_request.outputs.append(OutputDefinition('yield', 'Again'))
        with pytest.raises(InputError):
            evaluate_project(simple_request)


# ---- Time projections ----

class TestTimeProjections:
    def test_horizons_clipped_and_deduplicated(self, trial_request):
        cf = build_cash_flows(trial_request)
        rows = time_projections(cf, 7.0, (5, 10, 15, 20))
        assert [r['years'] for r in rows] == [5, 10]
        full = evaluate_project(trial_request)
        assert rows[-1]['npv'] == pytest.approx(full.npv)
        assert rows[0]['pv_costs'] < rows[1]['pv_costs']
