# test_mp_config.py
"""
Planner configuration: fluent setters, validation and JSON persistence.
"""

import json

import pytest

import mp_config as cfg
from mp_config import ConfigurationError, PlannerConfig


def test_defaults_follow_module_constants():
    config = PlannerConfig()
    assert config.epsilon == cfg.EPSILON
    assert config.dt == cfg.DT
    assert config.w == cfg.W
    assert config.goal_tolerances() == (cfg.TOL_POS, cfg.TOL_VEL, cfg.TOL_ACC)
    assert list(config.epsilon_schedule) == list(cfg.EPSILON_SCHEDULE)
    config.validate()


def test_fluent_setters():
    config = (PlannerConfig()
              .set_epsilon(2)
              .set_vmax(1.5)
              .set_amax(0.8)
              .set_jmax(0.4)
              .set_umax(0.8)
              .set_dt(0.5)
              .set_w(3)
              .set_max_num(-1)
              .set_u([[0.0, 0.0], [0.8, 0.0]])
              .set_tol(0.2, 0.1)
              .set_control_order(2))
    assert config.epsilon == 2.0
    assert config.max_expansions is None
    assert config.controls == [[0.0, 0.0], [0.8, 0.0]]
    assert config.goal_tolerances() == (0.2, 0.1, cfg.TOL_ACC)
    assert config.control_order == 2

    assert config.set_max_num(100).max_expansions == 100

    lattice = config.build_lattice(2)
    assert len(lattice) == 2
    assert lattice.dt == 0.5


def test_edge_weights():
    config = PlannerConfig()
    assert config.edge_weights(2) == [0.0, 0.0, 1.0, 0.0, 0.0]
    assert config.edge_weights(3) == [0.0, 0.0, 0.0, 1.0, 0.0]
    config.cost_weights = [0.0, 0.5, 1.0]
    assert config.edge_weights(2) == [0.0, 0.5, 1.0]


@pytest.mark.parametrize("changes", [
    {"dt": 0.0},
    {"umax": 0.0},
    {"epsilon": 0.5},
    {"du": 0.0},
    {"controls": []},
    {"w": -1.0},
    {"control_order": 5},
    {"tol_pos": -0.1},
    {"cost_weights": [0.0, -1.0]},
    {"key_resolution": [0.25, 0.0]},
    {"max_time": 0.0},
    {"epsilon_schedule": [2.0, 0.9]},
])
def test_validation_rejects(changes):
    config = PlannerConfig(**changes)
    with pytest.raises(ConfigurationError):
        config.validate()


def test_validation_reports_every_problem():
    with pytest.raises(ConfigurationError) as excinfo:
        PlannerConfig(dt=-1.0, epsilon=0.0).validate()
    assert "dt" in str(excinfo.value)
    assert "epsilon" in str(excinfo.value)


def test_json_round_trip(tmp_path):
    config = PlannerConfig().set_epsilon(1.5).set_u([[0.5, 0.0]]).set_tol(0.3, 0.2, 0.1)
    path = tmp_path / "planner.json"
    config.save(str(path))

    loaded = PlannerConfig.from_json(str(path))
    assert loaded.to_dict() == config.to_dict()

    data = json.loads(path.read_text())
    data["bogus"] = 1
    with pytest.raises(ConfigurationError):
        PlannerConfig.from_dict(data)


def test_demo_config():
    from mp_demo import build_config

    config = build_config(0.5).validate()
    assert len(config.controls) == 9
    assert [0.0, 0.0] in config.controls
    assert config.max_expansions is None
    assert config.goal_tolerances() == (0.2, 0.1, 1.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
