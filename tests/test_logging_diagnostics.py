import logging

import numpy as np
import pytest

from neighborx import KNNModel, TreeType
from neighborx import config as nx_config
from neighborx.diagnostics import OperationLog, log_operation
from neighborx.logging import get_logger
from neighborx.trees import build_tree


def _points() -> np.ndarray:
    return np.asarray(
        [
            [0.0, 0.0],
            [1.0, 1.0],
            [2.0, 2.0],
            [5.0, 0.5],
        ]
    )


@pytest.fixture(autouse=True)
def _reset_runtime():
    nx_config.reset_runtime_context()
    yield
    nx_config.reset_runtime_context()


def test_get_logger_nests_under_package_namespace() -> None:
    assert get_logger().name == "neighborx"
    assert get_logger("trees.registry").name == "neighborx.trees.registry"
    assert get_logger("neighborx.model").name == "neighborx.model"


def test_log_operation_records_metadata(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("tests.diagnostics")
    caplog.set_level(logging.INFO, logger="neighborx.tests.diagnostics")

    with log_operation(logger, "unit") as op_log:
        assert isinstance(op_log, OperationLog)
        op_log.add_metadata(points=3, ratio=0.5)

    message = caplog.records[-1].message
    assert message.startswith("op=unit wall_ms=")
    assert "points=3" in message
    assert "ratio=0.500" in message


def test_log_operation_logs_even_when_the_body_raises(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("tests.diagnostics")
    caplog.set_level(logging.INFO, logger="neighborx.tests.diagnostics")

    with pytest.raises(RuntimeError):
        with log_operation(logger, "failing"):
            raise RuntimeError("boom")

    assert any("op=failing" in record.message for record in caplog.records)


def test_build_tree_emits_resource_log(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="neighborx.trees.registry")

    build_tree(TreeType.KD_TREE, _points(), leaf_size=1)

    records = [record for record in caplog.records if "op=build_tree" in record.message]
    assert records, "expected build_tree operation log"
    message = records[-1].message
    assert "wall_ms=" in message
    assert "cpu_user_ms=" in message
    assert "rss_delta=" in message
    assert "points=4" in message
    assert "tree=kd-tree" in message


def test_knn_search_emits_resource_log(caplog: pytest.LogCaptureFixture) -> None:
    model = KNNModel(TreeType.BALL_TREE).build_model(_points(), leaf_size=1)
    caplog.set_level(logging.INFO, logger="neighborx.search.neighbor_search")

    indices, _ = model.search(np.asarray([[0.1, 0.1], [2.7, 2.8]]), 2)

    assert indices.shape == (2, 2)
    records = [record for record in caplog.records if "op=knn_search" in record.message]
    assert records, "expected knn_search operation log"
    message = records[-1].message
    assert "queries=2" in message
    assert "k=2" in message
    assert "mode=dual" in message


def test_diagnostics_can_be_disabled(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("NEIGHBORX_ENABLE_DIAGNOSTICS", "0")
    nx_config.reset_runtime_context()

    model = KNNModel(TreeType.KD_TREE).build_model(_points(), naive=True)
    caplog.set_level(logging.INFO, logger="neighborx.search.neighbor_search")

    model.search(np.asarray([[0.1, 0.1]]), 1)

    records = [record for record in caplog.records if "op=knn_search" in record.message]
    assert records
    message = records[-1].message
    assert "cpu_user_ms=NA" in message
    assert "rss_delta=NA" in message
