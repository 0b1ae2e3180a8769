import math

import numpy as np
import pytest

from surfelmap.deformation import DeformationGraph, OptimisationResult

K = 4
NODE_COUNT = 12


def make_graph():
    rng = np.random.default_rng(7)
    nodes = rng.uniform(-1.0, 1.0, size=(NODE_COUNT, 3))
    times = list(range(NODE_COUNT))
    vertices = [node + rng.uniform(-0.05, 0.05, size=3) for node in nodes]
    graph = DeformationGraph(K, vertices)
    graph.initialise_graph(list(nodes), times)
    graph.append_vertices(times, len(vertices))
    return graph, vertices, nodes, times


def test_initialise_graph_builds_connected_nodes():
    rng = np.random.default_rng(1)
    nodes = rng.uniform(size=(NODE_COUNT, 3))
    graph = DeformationGraph(K, [])
    assert not graph.is_init()
    graph.initialise_graph(list(nodes), list(range(NODE_COUNT)))
    assert graph.is_init()
    assert len(graph.graph) == NODE_COUNT
    assert graph.graph_times == list(range(NODE_COUNT))
    assert all(len(node.neighbours) == K for node in graph.graph)
    assert all(np.allclose(node.rotation, np.eye(3)) for node in graph.graph)


def test_mismatched_times_rejected():
    graph = DeformationGraph(K, [])
    with pytest.raises(ValueError):
        graph.initialise_graph([np.zeros(3)] * NODE_COUNT, [0, 1])


def test_constraints_need_initialised_graph():
    graph = DeformationGraph(K, [np.zeros(3)])
    with pytest.raises(RuntimeError):
        graph.add_constraint(0, np.zeros(3))
    with pytest.raises(RuntimeError):
        graph.add_relative_constraint(0, 0)


def test_identity_graph_reproduces_vertices():
    graph, vertices, _, _ = make_graph()
    for i, vertex in enumerate(vertices):
        assert np.allclose(graph.compute_vertex_position(i), vertex)


def test_compute_vertex_position_out_of_range():
    graph, _, _, _ = make_graph()
    with pytest.raises(IndexError):
        graph.compute_vertex_position(NODE_COUNT)
    with pytest.raises(IndexError):
        graph.compute_vertex_position(-1)


def test_append_vertices_weights_new_points():
    graph, vertices, nodes, times = make_graph()
    vertices.append(nodes[11] + np.array([0.01, 0.0, 0.0]))
    vertices.append(nodes[10] + np.array([0.0, 0.01, 0.0]))
    graph.append_vertices(times + [11, 10], len(vertices))
    assert np.allclose(graph.compute_vertex_position(13), vertices[13])
    assert np.allclose(graph.compute_vertex_position(12), vertices[12])


def test_apply_identity_graph_keeps_vertices():
    graph, vertices, _, _ = make_graph()
    before = [v.copy() for v in vertices]
    graph.apply_graph_to_vertices()
    for old, new in zip(before, vertices):
        assert np.allclose(old, new)


def test_fern_match_with_small_error_is_skipped():
    graph, vertices, _, _ = make_graph()
    graph.add_constraint(10, vertices[10] + np.array([0.05, 0.0, 0.0]))
    result = graph.optimise_graph_sparse(True, 5)
    assert result == OptimisationResult(False, None, pytest.approx(0.05))


def test_constraint_is_overwritten():
    graph, vertices, _, _ = make_graph()
    graph.add_constraint(10, vertices[10] + np.array([5.0, 5.0, 5.0]))
    graph.add_constraint(10, vertices[10].copy())
    result = graph.optimise_graph_sparse(True, 5)
    assert not result.optimised
    assert result.mean_constraint_error == pytest.approx(0.0, abs=1e-9)


def test_optimise_reduces_constraint_error():
    graph, vertices, _, _ = make_graph()
    graph.add_constraint(10, vertices[10] + np.array([0.05, 0.0, 0.0]))
    result = graph.optimise_graph_sparse(False, 5)
    assert result.optimised
    assert math.isfinite(result.error) and result.error >= 0.0
    assert result.mean_constraint_error < 0.05


def test_optimise_leaves_old_nodes_untouched():
    graph, vertices, _, _ = make_graph()
    graph.add_constraint(10, vertices[10] + np.array([0.05, 0.0, 0.0]))
    graph.optimise_graph_sparse(False, 5)
    for node in graph.graph[:6]:
        assert not node.enabled
        assert np.allclose(node.rotation, np.eye(3))
        assert np.allclose(node.translation, 0.0)
    assert all(node.enabled for node in graph.graph[6:])


def test_apply_after_optimise_moves_vertex_toward_target():
    graph, vertices, _, _ = make_graph()
    target = vertices[10] + np.array([0.05, 0.0, 0.0])
    graph.add_constraint(10, target)
    before = float(np.linalg.norm(vertices[10] - target))
    graph.optimise_graph_sparse(False, 5)
    graph.apply_graph_to_vertices()
    after = float(np.linalg.norm(vertices[10] - target))
    assert after < before


def test_relative_constraint_pulls_vertices_together():
    graph, vertices, _, _ = make_graph()
    graph.add_relative_constraint(10, 11)
    before = float(np.linalg.norm(vertices[10] - vertices[11]))
    result = graph.optimise_graph_sparse(False, 5)
    assert result.optimised
    assert math.isnan(result.mean_constraint_error) is False
    after = float(
        np.linalg.norm(graph.compute_vertex_position(10) - graph.compute_vertex_position(11))
    )
    assert after < before


def test_optimise_without_constraints():
    graph, _, _, _ = make_graph()
    result = graph.optimise_graph_sparse(True, 5)
    assert result.optimised
    assert math.isnan(result.mean_constraint_error)
    assert result.error < 1e-12


def test_clear_constraints_removes_them():
    graph, vertices, _, _ = make_graph()
    graph.add_constraint(10, vertices[10] + np.array([1.0, 0.0, 0.0]))
    graph.clear_constraints()
    result = graph.optimise_graph_sparse(False, 5)
    assert result.optimised
    assert result.error < 1e-12
    assert math.isnan(result.mean_constraint_error)
    assert np.allclose(graph.compute_vertex_position(10), vertices[10])


def test_reset_graph_restores_rotations():
    graph, vertices, _, _ = make_graph()
    graph.add_constraint(10, vertices[10] + np.array([0.05, 0.0, 0.0]))
    graph.optimise_graph_sparse(False, 5)
    assert any(not np.allclose(node.rotation, np.eye(3)) for node in graph.graph)
    graph.reset_graph()
    assert all(np.array_equal(node.rotation, np.eye(3)) for node in graph.graph)


def test_identity_graph_keeps_poses():
    graph, _, nodes, times = make_graph()
    poses = []
    for node in nodes[3:8]:
        pose = np.eye(4)
        pose[:3, 3] = node + 0.01
        poses.append(pose)
    originals = [p.copy() for p in poses]
    graph.set_poses_seq(times[3:8], poses)
    graph.apply_graph_to_poses(poses)
    for original, pose in zip(originals, poses):
        assert np.allclose(original, pose)


def test_deformed_poses_stay_rigid():
    graph, vertices, nodes, times = make_graph()
    pose = np.eye(4)
    pose[:3, 3] = nodes[10]
    graph.set_poses_seq([10], [pose])
    graph.add_constraint(10, vertices[10] + np.array([0.05, 0.0, 0.0]))
    graph.optimise_graph_sparse(False, 5)
    graph.apply_graph_to_poses([pose])
    rotation = pose[:3, :3]
    assert np.allclose(rotation @ rotation.T, np.eye(3))
    assert np.allclose(pose[3], [0.0, 0.0, 0.0, 1.0])


def test_pose_count_mismatch_raises():
    graph, _, nodes, _ = make_graph()
    pose = np.eye(4)
    pose[:3, 3] = nodes[4]
    graph.set_poses_seq([4], [pose])
    with pytest.raises(ValueError):
        graph.apply_graph_to_poses([pose, pose.copy()])