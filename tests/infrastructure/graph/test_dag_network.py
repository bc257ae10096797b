from unittest import TestCase
import unittest

import numpy as np

from roipool.domain._box import Box
from roipool.infrastructure.graph._layer_kinds import LayerKind, build_layer
from roipool.infrastructure.graph._network import DagNetwork
from roipool.infrastructure.layers._sum import Sum
from roipool.infrastructure.ops.roi_pool_cpu import roi_pool_backward_cpu
from roipool.infrastructure.pooling._roi_pooling_module import RoiPool2d
from roipool.infrastructure.tensor._tensor import Tensor


def _quadrant_map() -> np.ndarray:
    return np.arange(1, 17, dtype=np.float32).reshape(4, 4, 1)


class _TwoBranchMixin:
    """Two ROI layers over one feature map, joined by a Sum."""

    def _two_branch_net(self, **flags) -> DagNetwork:
        net = DagNetwork(**flags)
        net.add_layer(
            "roi_a",
            "roi_pooling",
            ["fmap", "size", "boxes_a"],
            ["rois_a", "mask_a"],
            pool_size=2,
        )
        net.add_layer(
            "roi_b",
            LayerKind.ROI_POOLING,
            ["fmap", "size", "boxes_b"],
            ["rois_b", "mask_b"],
            pool_size=[2, 2],
        )
        net.add_layer("join", Sum(), ["rois_a", "rois_b"], ["total"])
        return net

    def _inputs(self) -> dict:
        return {
            "fmap": _quadrant_map(),
            "size": (4, 4),
            "boxes_a": [Box(0, 0, 4, 4)],
            "boxes_b": [Box(1, 1, 4, 4)],
        }

    def _seed(self) -> dict:
        return {"total": Tensor.from_numpy(np.ones((2, 2, 1, 1)))}


class TestDagNetworkConstruction(TestCase):
    def test_layers_built_from_kinds(self):
        net = DagNetwork()
        node = net.add_layer(
            "roi", "roi_pooling", ["f", "s", "b"], ["rois", "mask"], pool_size=(3, 2)
        )
        self.assertIsInstance(node.layer, RoiPool2d)
        self.assertEqual(node.layer.pool_size, (3, 2))
        self.assertIs(node.kind, LayerKind.ROI_POOLING)

        node = net.add_layer("join", LayerKind.SUM, ["rois", "rois"], ["out"])
        self.assertIsInstance(node.layer, Sum)

    def test_build_layer_round_trips_config(self):
        layer = RoiPool2d((4, 5))
        rebuilt = build_layer(LayerKind.ROI_POOLING, **layer.get_config())
        self.assertEqual(rebuilt.pool_size, (4, 5))
        self.assertEqual(build_layer("roi_pooling").pool_size, (1, 1))

    def test_unknown_kind_raises(self):
        with self.assertRaises(ValueError):
            DagNetwork().add_layer("conv", "conv2d", ["x"], ["y"])

    def test_duplicate_layer_name_raises(self):
        net = DagNetwork()
        net.add_layer("join", Sum(), ["a", "b"], ["c"])
        with self.assertRaises(ValueError):
            net.add_layer("join", Sum(), ["c", "c"], ["d"])

    def test_second_producer_of_a_variable_raises(self):
        net = DagNetwork()
        net.add_layer("roi", RoiPool2d(2), ["f", "s", "b"], ["rois", "mask"])
        with self.assertRaises(ValueError):
            net.add_layer("other", Sum(), ["f", "f"], ["rois"])
        self.assertEqual([n.name for n in net.nodes], ["roi"])

    def test_layer_listing_an_output_twice_raises(self):
        with self.assertRaises(ValueError):
            DagNetwork().add_layer("roi", RoiPool2d(2), ["f", "s", "b"], ["r", "r"])

    def test_unknown_config_keys_raise(self):
        with self.assertRaises(ValueError):
            build_layer("roi_pooling", poolsize=3)
        with self.assertRaises(ValueError):
            build_layer(LayerKind.SUM, pool_size=2)
        with self.assertRaises(ValueError):
            Sum.from_config({"x": 1})
        self.assertIsInstance(Sum.from_config({}), Sum)
        with self.assertRaises(ValueError):
            DagNetwork().add_layer("roi", "roi_pooling", ["f", "s", "b"], ["r", "m"], size=3)

    def test_config_with_instance_raises(self):
        with self.assertRaises(ValueError):
            DagNetwork().add_layer(
                "roi", RoiPool2d(2), ["f", "s", "b"], ["r", "m"], pool_size=3
            )

    def test_variables_are_shared_by_name(self):
        net = DagNetwork()
        a = net.add_layer("roi_a", RoiPool2d(2), ["f", "s", "b"], ["ra", "ma"])
        b = net.add_layer("roi_b", RoiPool2d(2), ["f", "s", "b2"], ["rb", "mb"])
        self.assertEqual(a.input_indexes[0], b.input_indexes[0])
        self.assertEqual(len(net.vars), 8)

    def test_unknown_names_raise_key_error(self):
        net = DagNetwork()
        with self.assertRaises(KeyError):
            net.get_var("missing")
        with self.assertRaises(KeyError):
            net.get_param("missing")
        with self.assertRaises(KeyError):
            net.set_precious("missing")

    def test_add_param_wraps_arrays(self):
        net = DagNetwork()
        param = net.add_param("w", np.ones(3, dtype=np.float32))
        self.assertIsInstance(param.value, Tensor)
        self.assertIs(net.get_param("w"), param)


class TestExecutionOrder(TestCase):
    def test_producers_run_before_consumers(self):
        net = DagNetwork()
        net.add_layer("join", Sum(), ["rois_a", "rois_b"], ["total"])
        net.add_layer("roi_a", RoiPool2d(2), ["f", "s", "ba"], ["rois_a", "ma"])
        net.add_layer("roi_b", RoiPool2d(2), ["f", "s", "bb"], ["rois_b", "mb"])

        names = [node.name for node in net.execution_order()]
        self.assertEqual(names, ["roi_a", "roi_b", "join"])

    def test_cycle_raises(self):
        net = DagNetwork()
        net.add_layer("p", Sum(), ["a"], ["b"])
        net.add_layer("q", Sum(), ["b"], ["a"])
        with self.assertRaises(ValueError):
            net.execution_order()

    def test_order_is_recomputed_after_adding_layers(self):
        net = DagNetwork()
        net.add_layer("p", Sum(), ["a"], ["b"])
        self.assertEqual([n.name for n in net.execution_order()], ["p"])
        net.add_layer("q", Sum(), ["b"], ["c"])
        self.assertEqual([n.name for n in net.execution_order()], ["p", "q"])


class TestDagNetworkSweeps(TestCase, _TwoBranchMixin):
    def test_forward_fills_outputs(self):
        net = self._two_branch_net()
        net.forward(self._inputs())

        total = net.get_var("total").value.to_numpy()[..., 0, 0]
        # both boxes put the same four maxima in their bins
        np.testing.assert_array_equal(total, [[12, 16], [28, 32]])

    def test_shared_input_accumulates_both_branches(self):
        net = self._two_branch_net(conserve_memory=False)
        net.forward(self._inputs())
        sweep = net.backward(self._seed())

        fmap_index = net._var_index["fmap"]
        self.assertEqual(sweep.pending_var_refs[fmap_index], 2)

        expected = np.zeros(16, dtype=np.float32)
        expected[[5, 7, 13, 15]] = 2.0
        der = net.get_var("fmap").der.to_numpy().reshape(-1)
        np.testing.assert_array_equal(der, expected)

    def test_accumulated_derivative_matches_kernels(self):
        net = self._two_branch_net(conserve_memory=False)
        net.forward(self._inputs())
        net.backward(self._seed())

        ones = np.ones((2, 2, 1, 1), dtype=np.float32)
        ref = roi_pool_backward_cpu(
            1, (4, 4, 1), 2, net.get_var("mask_a").value.to_numpy(), ones
        ) + roi_pool_backward_cpu(
            1, (4, 4, 1), 2, net.get_var("mask_b").value.to_numpy(), ones
        )
        np.testing.assert_array_equal(net.get_var("fmap").der.to_numpy(), ref)

    def test_repeated_sweeps_do_not_double_count(self):
        net = self._two_branch_net(conserve_memory=False)
        net.forward(self._inputs())

        net.backward(self._seed())
        first = net.get_var("fmap").der.to_numpy().copy()
        net.backward(self._seed())

        np.testing.assert_array_equal(net.get_var("fmap").der.to_numpy(), first)

    def test_conserve_memory_releases_intermediates(self):
        net = self._two_branch_net()
        net.set_precious("rois_b")
        net.forward(self._inputs())
        net.backward(self._seed())

        self.assertIsNone(net.get_var("total").value)
        self.assertIsNone(net.get_var("rois_a").value)
        self.assertIsNotNone(net.get_var("rois_b").value)
        self.assertIsNotNone(net.get_var("mask_a").value)
        self.assertEqual(net.get_var("fmap").der.to_numpy().sum(), 8.0)

    def test_branch_without_derivative_is_skipped(self):
        net = DagNetwork(conserve_memory=False)
        net.add_layer("roi_a", RoiPool2d(2), ["fmap", "size", "ba"], ["ra", "ma"])
        net.add_layer("roi_b", RoiPool2d(2), ["fmap", "size", "bb"], ["rb", "mb"])
        net.forward(
            {
                "fmap": _quadrant_map(),
                "size": (4, 4),
                "ba": [Box(0, 0, 4, 4)],
                "bb": [Box(1, 1, 4, 4)],
            }
        )

        with self.assertLogs("roipool.infrastructure.graph._network", level="DEBUG") as cm:
            sweep = net.backward({"ra": Tensor.from_numpy(np.ones((2, 2, 1, 1)))})

        self.assertTrue(any("roi_b" in line for line in cm.output))
        self.assertEqual(sweep.pending_var_refs[net._var_index["fmap"]], 1)
        self.assertEqual(net.get_var("fmap").der.to_numpy().sum(), 4.0)

    def test_eval_runs_forward_then_backward(self):
        net = self._two_branch_net(conserve_memory=False)
        self.assertIsNone(net.eval(self._inputs()))

        sweep = net.eval(self._inputs(), self._seed())
        self.assertIsNotNone(sweep)
        self.assertEqual(net.get_var("fmap").der.to_numpy().sum(), 8.0)

    def test_mismatched_branches_raise(self):
        net = self._two_branch_net()
        inputs = self._inputs()
        inputs["boxes_b"] = [Box(0, 0, 2, 2), Box(1, 1, 4, 4)]
        with self.assertRaises(ValueError):
            net.forward(inputs)


if __name__ == "__main__":
    unittest.main()
