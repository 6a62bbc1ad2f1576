import pytest

from farmcba.utils import (ConfigurationContext, EvaluationRequest, OutputDefinition, ScenarioRange,
                           SimulationSettings, Treatment)


def flat_config(years=1, rate=0.0, **kw):
    """Config with every scenario range collapsed to one value."""
    return ConfigurationContext(
        years=years,
        start_year=2025,
        discount=ScenarioRange(rate, rate, rate),
        adoption=ScenarioRange(1.0, 1.0, 1.0),
        risk=ScenarioRange(0.0, 0.0, 0.0),
        **kw,
    )


@pytest.fixture
def simple_request():
    """One hectare, benefit 100/yr, cost 40/yr, no capital."""
    return EvaluationRequest(
        outputs=[OutputDefinition('yield', 'Grain yield', 't/ha', 100.0)],
        treatments=[Treatment('t1', 'Treatment', area_ha=1.0, is_control=True,
                              deltas={'yield': 1.0}, labour_cost_per_ha=40.0)],
        config=flat_config(),
    )


@pytest.fixture
def trial_request():
    """Faba bean style trial: control plus two amendments."""
    outputs = [
        OutputDefinition('yield', 'Grain yield', 't/ha', 450.0),
        OutputDefinition('protein', 'Protein', 'percentage point', 10.0),
    ]
    treatments = [
        Treatment('control', 'Control (no amendment)', area_ha=100.0, is_control=True,
                  deltas={'yield': 0.0, 'protein': 0.0}, labour_cost_per_ha=40.0),
        Treatment('ripping', 'Deep ripping', area_ha=100.0,
                  deltas={'yield': 0.5, 'protein': 0.0}, materials_cost_per_ha=100.0, capital_cost=5000.0),
        Treatment('gypsum', 'Gypsum', area_ha=100.0,
                  deltas={'yield': 0.2, 'protein': 0.0}, materials_cost_per_ha=30.0),
    ]
    config = ConfigurationContext(
        years=10,
        start_year=2025,
        simulation=SimulationSettings(runs=200, seed=12345, batch_size=50),
    )
    return EvaluationRequest(outputs=outputs, treatments=treatments, config=config)
