IOTA = 15                    # magnitude of attractive / repulsive stimulus
DECAY_RATE = 0.2             # passive decay constant A of the shunting equation
NEIGHBOUR_SCALE = 6.0        # excitation weight is 1 / (NEIGHBOUR_SCALE * distance)
ACTIVATION_FLOOR = 0.0001    # activations smaller than this in magnitude snap to 0

# Deliberative network: input, hidden..., output
LAYER_SIZES = (6, 8, 6, 4, 3)
OUTPUT_THRESHOLD = 0.3

# Genetic operators
MUTATION_RATE = 0.01
CROSSOVER_RATE = 0.05
MODULATION_RATE = 0.15

# Steady-state GA
POPULATION_SIZE = 25
TOURNAMENT_SIZE = 3
NUM_GENERATIONS = 500
TIME_STEPS = 500
FLUSH_INTERVAL = 125

# River Crossing world
ROWS = 19
COLS = 19
RIVER_COL = 9
RIVER_DEPTH = 2
RESOURCE_CELLS = ((2, 16), (16, 2), (13, 5), (5, 13))
STONE_CELLS = ((1, 12), (17, 6), (3, 4), (15, 14), (6, 7), (12, 11), (10, 17), (9, 1))


def layer_schedule(aware: bool = False) -> tuple:
    """Aware agents also read the partner's last sub-goal output."""
    if not aware:
        return LAYER_SIZES
    return (LAYER_SIZES[0] + LAYER_SIZES[-1],) + LAYER_SIZES[1:]
