# tests/unit/compose/test_dag_builder.py — v1
"""Tests for compose/dag_builder.py — dependency ordering of services."""

from __future__ import annotations

import pytest

from shipline.compose.dag_builder import DAGError, build_dag
from shipline.core.errors import DescriptorError


class TestBuildDAG:
    def test_empty_map(self):
        plan = build_dag({})
        assert plan.total == 0
        assert plan.levels == []
        assert plan.flat_order == []

    def test_tutorial_app_chain(self):
        plan = build_dag({"frontend": ["backend"], "backend": ["mongo"], "mongo": []})
        assert plan.levels == [["mongo"], ["backend"], ["frontend"]]
        assert plan.total == 3

    def test_independent_services_share_level(self):
        plan = build_dag({"db": [], "api": ["db"], "worker": ["db"]})
        assert plan.levels == [["db"], ["api", "worker"]]

    def test_diamond(self):
        plan = build_dag({"a": [], "b": ["a"], "c": ["a"], "d": ["b", "c"]})
        order = plan.flat_order
        assert order.index("a") < order.index("b") < order.index("d")
        assert order.index("c") < order.index("d")

    def test_duplicate_dependency_counted_once(self):
        plan = build_dag({"a": [], "b": ["a", "a"]})
        assert plan.flat_order == ["a", "b"]

    def test_cycle_raises(self):
        with pytest.raises(DAGError, match="cycle"):
            build_dag({"a": ["b"], "b": ["a"], "c": []})

    def test_missing_dependency_raises(self):
        with pytest.raises(DAGError, match="not declared"):
            build_dag({"backend": ["redis"]})

    def test_dag_error_is_descriptor_error(self):
        assert issubclass(DAGError, DescriptorError)
