import numpy as np

from reactive_layer import ReactiveLayer
from settings import COLS, IOTA, RIVER_COL, ROWS
from world import RiverCrossingWorld


def _setup(repel_agents=False):
    grid, resources = RiverCrossingWorld().build_grid()
    layer = ReactiveLayer(ROWS, COLS, repel_agents)
    layer.set_resource(resources[0])
    return grid, resources, layer


def test_target_resource_follows_desire():
    grid, resources, layer = _setup()
    r, c = resources[0].row, resources[0].col
    assert layer.build_stimulus([1, 0, 0], False, grid)[r, c] == IOTA
    assert layer.build_stimulus([-1, 0, 0], False, grid)[r, c] == -IOTA
    assert layer.build_stimulus([0, 0, 0], False, grid)[r, c] == 0


def test_foreign_resource_always_repels():
    grid, resources, layer = _setup()
    r, c = resources[1].row, resources[1].col
    for desire in ([1, 0, 0], [0, 0, 0], [-1, 0, 0]):
        assert layer.build_stimulus(desire, False, grid)[r, c] == -IOTA


def test_stone_follows_desire():
    grid, _, layer = _setup()
    assert layer.build_stimulus([0, 1, 0], False, grid)[1, 12] == IOTA
    assert layer.build_stimulus([0, -1, 0], False, grid)[1, 12] == -IOTA


def test_water_rules_depend_on_partial_bridge():
    grid, _, layer = _setup()
    assert layer.build_stimulus([0, 0, 1], False, grid)[0, RIVER_COL] == IOTA
    assert layer.build_stimulus([0, 0, 1], True, grid)[0, RIVER_COL] == -IOTA
    grid[0][RIVER_COL].obj.depth = 1
    assert layer.build_stimulus([0, 0, 1], True, grid)[0, RIVER_COL] == IOTA
    assert layer.build_stimulus([0, 0, -1], False, grid)[0, RIVER_COL] == -IOTA


def test_other_agents_repel_only_when_enabled():
    grid, _, layer = _setup()
    assert layer.build_stimulus([0, 0, 0], False, grid, occupied=[(0, 0)])[0, 0] == 0
    grid, _, repelling = _setup(repel_agents=True)
    assert repelling.build_stimulus([0, 0, 0], False, grid, occupied=[(0, 0)])[0, 0] == -IOTA


def test_update_activations_advances_field():
    grid, resources, layer = _setup()
    activations = layer.update_activations([1, 0, 0], False, grid)
    assert activations[resources[0].row, resources[0].col] == IOTA
    assert np.array_equal(layer.activation_landscape(), activations)


def test_neighbour_landscape_at_corner():
    _, _, layer = _setup()
    neighbours = layer.neighbour_landscape(0, 0)
    assert len(neighbours) == 8
    assert sum(n is not None for n in neighbours) == 3
