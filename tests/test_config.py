import json

import pytest

from sfacut import ConfigurationError, SearchConfig, UnknownEntity, config


def test_defaults_come_from_runtime_config():
    cfg = SearchConfig(width=4, height=4)
    assert cfg.order == config.DEFAULT.order
    assert cfg.max_unbalance == config.DEFAULT.max_unbalance
    assert cfg.cost_model == config.DEFAULT.cost_model
    assert cfg.min_depth == 0
    assert cfg.max_depth is None
    assert cfg.patterns is None


def test_default_order():
    assert config.DEFAULT_ORDER == "ABCDCDABABCDCDABABCD"


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("SFACUT_TEST_INT", "12")
    monkeypatch.setenv("SFACUT_TEST_BAD", "twelve")
    monkeypatch.setenv("SFACUT_TEST_BOOL", "off")
    monkeypatch.setenv("SFACUT_TEST_STR", "  ABAB ")
    assert config._int_from_env("SFACUT_TEST_INT", 3) == 12
    assert config._int_from_env("SFACUT_TEST_BAD", 3) == 3
    assert config._int_from_env("SFACUT_TEST_MISSING", 3) == 3
    assert config._bool_from_env("SFACUT_TEST_BOOL", True) is False
    assert config._str_from_env("SFACUT_TEST_STR", "AB") == "ABAB"


def test_runtime_defaults_follow_monkeypatched_config(monkeypatch):
    monkeypatch.setattr(config.DEFAULT, "order", "ABC")
    monkeypatch.setattr(config.DEFAULT, "max_unbalance", 2)
    cfg = SearchConfig(width=3, height=3)
    assert cfg.order == "ABC"
    assert cfg.max_unbalance == 2


def test_references_are_normalised():
    cfg = SearchConfig(width=4, height=4, unused_qubits=[[1, 2], 3], unused_couplers=[[[0, 0], [0, 1]], [4, 5]])
    assert cfg.unused_qubits == ((1, 2), 3)
    assert cfg.unused_couplers == (((0, 0), (0, 1)), (4, 5))


@pytest.mark.parametrize(
    "changes,field",
    [
        ({"min_depth": -1}, "min_depth"),
        ({"max_depth": -2}, "max_depth"),
        ({"min_depth": 5, "max_depth": 4}, "max_depth"),
        ({"max_unbalance": -1}, "max_unbalance"),
        ({"order": ""}, "order"),
        ({"order": "   "}, "order"),
        ({"max_patterns": 0}, "max_patterns"),
        ({"workers": 0}, "workers"),
        ({"chunk_size": 0}, "chunk_size"),
        ({"cost_model": "quadratic"}, "cost_model"),
        ({"patterns": "ABAB"}, "patterns"),
        ({"patterns": ["AB", 3]}, "patterns"),
    ],
)
def test_invalid_fields(changes, field):
    with pytest.raises(ConfigurationError) as excinfo:
        SearchConfig(width=3, height=3, **changes)
    assert excinfo.value.field == field
    assert field in str(excinfo.value)


def test_malformed_reference():
    with pytest.raises(UnknownEntity):
        SearchConfig(width=3, height=3, unused_qubits=[(1, 2, 3)])


def test_json_round_trip(tmp_path):
    cfg = SearchConfig(
        width=5,
        height=4,
        unused_qubits=[(0, 0), 7],
        unused_couplers=[((1, 1), (1, 2))],
        qubit_at_origin=True,
        min_depth=2,
        max_depth=9,
        max_unbalance=3,
        order="ABCD",
        patterns=None,
        max_patterns=10,
        workers=2,
        chunk_size=64,
    )
    path = tmp_path / "config.json"
    cfg.to_json(path)
    assert SearchConfig.from_json(path) == cfg


def test_replace_revalidates():
    cfg = SearchConfig(width=3, height=3)
    assert cfg.replace(max_unbalance=1).max_unbalance == 1
    with pytest.raises(ConfigurationError):
        cfg.replace(max_unbalance=-1)


def test_null_means_default():
    cfg = SearchConfig.from_dict({"width": 3, "height": 3, "order": None, "max_depth": None})
    assert cfg.order == config.DEFAULT.order
    assert cfg.max_depth is None


def test_unknown_and_missing_fields():
    with pytest.raises(ConfigurationError) as excinfo:
        SearchConfig.from_dict({"width": 3, "height": 3, "depth": 4})
    assert excinfo.value.field == "depth"
    with pytest.raises(ConfigurationError) as excinfo:
        SearchConfig.from_dict({"width": 3})
    assert excinfo.value.field == "height"


def test_legacy_layout(tmp_path):
    data = {
        "topology": {
            "grid_width": 12,
            "grid_height": 11,
            "unused_qubits": [],
            "unused_couplers": [],
            "qubit_at_origin": False,
        },
        "algorithm": {
            "min_search_depth": 2,
            "max_search_depth": 10,
            "max_unbalance": 11,
            "ordering": ["A", "B", "C", "D", "C", "D", "A", "B"],
            "circuit_depth": 20,
        },
    }
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps(data))
    cfg = SearchConfig.from_json(path)
    assert (cfg.width, cfg.height) == (12, 11)
    assert not cfg.qubit_at_origin
    assert (cfg.min_depth, cfg.max_depth, cfg.max_unbalance) == (2, 10, 11)
    assert cfg.order == "ABCDCDABABCDCDABABCD"


def test_config_file_must_hold_an_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigurationError):
        SearchConfig.from_json(path)
