"""
world.py — the River Crossing Dilemma grid world.

Reference environment collaborator for the evolution engine. A river of
water runs down the middle of the grid; each agent must collect one
Resource on either bank, which means carrying Stones into the river until
it is shallow enough to cross.

Interface used by the engine:
    reset_episode(policies) -> Episode
    step(episode)           -> (statuses, done)
    evaluate(episode)       -> [EpisodeResult, ...]
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from cells import Cell, Resource, Stone, Water
from lattice import MOORE_OFFSETS
from policy import Policy
from settings import (
    COLS,
    RESOURCE_CELLS,
    RIVER_COL,
    RIVER_DEPTH,
    ROWS,
    STONE_CELLS,
    TIME_STEPS,
)

logger = logging.getLogger(__name__)


@dataclass
class SimulationState:
    """World-level flags shared by every agent of one episode."""
    partial_bridge: bool = False


@dataclass
class AgentBody:
    policy: Policy
    row: int
    col: int
    targets: List[Resource] = field(default_factory=list)
    alive: bool = True
    carrying: bool = False
    has_carried: bool = False
    dropped_in_river: bool = False
    achieved_goal: bool = False
    moves: int = 0
    stones_placed: int = 0
    resources_found: int = 0


@dataclass
class EpisodeResult:
    fitness: float
    moves: int
    alive: bool
    has_carried: bool
    dropped_in_river: bool
    stones_placed: int
    resources_found: int
    achieved_goal: bool

    def as_record(self) -> str:
        flag = lambda b: "t" if b else "f"
        return (
            f"{self.fitness},{self.moves},{flag(self.alive)},{flag(self.has_carried)},"
            f"{flag(self.dropped_in_river)},{self.stones_placed},{self.resources_found},"
            f"{flag(self.achieved_goal)}"
        )


@dataclass
class Episode:
    grid: List[List[Cell]]
    bodies: List[AgentBody]
    state: SimulationState
    ticks: int = 0


def score_episode(body: AgentBody, time_steps: int = TIME_STEPS) -> float:
    score = 10.0 * body.resources_found
    if body.has_carried:
        score += 1.0
    score += 2.0 * body.stones_placed
    if body.achieved_goal:
        score += 50.0 + 10.0 * max(time_steps - body.moves, 0) / time_steps
    if not body.alive:
        score -= 5.0
    return score


class RiverCrossingWorld:
    def __init__(
        self,
        rows: int = ROWS,
        cols: int = COLS,
        time_steps: int = TIME_STEPS,
        fitness_fn: Callable[[AgentBody, int], float] = score_episode,
    ):
        if rows < ROWS or cols < COLS:
            raise ValueError(f"the river crossing layout needs at least {ROWS}x{COLS} cells")
        self.rows = rows
        self.cols = cols
        self.time_steps = time_steps
        self.fitness_fn = fitness_fn

    # ─── Layout ─────────────────────────────────────────────────────────────
    def build_grid(self) -> Tuple[List[List[Cell]], List[Resource]]:
        grid = [[Cell(i, j) for j in range(self.cols)] for i in range(self.rows)]
        resources = []
        for r, c in RESOURCE_CELLS:
            res = Resource(r, c)
            grid[r][c].obj = res
            resources.append(res)
        for r, c in STONE_CELLS:
            grid[r][c].obj = Stone(r, c)
        for r in range(self.rows):
            grid[r][RIVER_COL].obj = Water(r, RIVER_COL, RIVER_DEPTH)
        return grid, resources

    def start_cell(self, index: int) -> Tuple[int, int]:
        return (0, 0) if index == 0 else (self.rows - 1, self.cols - 1)

    # ─── Episode interface ──────────────────────────────────────────────────
    def reset_episode(self, policies: Sequence[Policy]) -> Episode:
        if not 1 <= len(policies) <= 2:
            raise ValueError(f"an episode holds one or two agents, got {len(policies)}")
        grid, resources = self.build_grid()
        bodies = []
        for k, policy in enumerate(policies):
            policy.reset(self.rows, self.cols)
            row, col = self.start_cell(k)
            body = AgentBody(policy=policy, row=row, col=col)
            for target in (resources[k], resources[k + 2]):
                body.targets.append(target)
                policy.reactive_layer.set_resource(target)
            bodies.append(body)
        return Episode(grid=grid, bodies=bodies, state=SimulationState())

    def status_vector(
        self,
        episode: Episode,
        index: int,
        outputs: Optional[Sequence[np.ndarray]] = None,
    ) -> np.ndarray:
        """
        ``outputs`` is the per-body sub-goal snapshot taken at the start of
        the tick; without it the partner's current output is read.
        """
        body = episode.bodies[index]
        cell = episode.grid[body.row][body.col]
        obj = cell.obj
        status = [
            1.0 if cell.is_empty() else 0.0,
            1.0 if isinstance(obj, Resource) else 0.0,
            1.0 if isinstance(obj, Stone) else 0.0,
            1.0 if isinstance(obj, Water) else 0.0,
            1.0 if body.carrying else 0.0,
            1.0 if episode.state.partial_bridge else 0.0,
        ]
        if body.policy.aware:
            if len(episode.bodies) > 1:
                partner = (index + 1) % len(episode.bodies)
                if outputs is None:
                    status.extend(episode.bodies[partner].policy.last_output())
                else:
                    status.extend(outputs[partner])
            else:
                status.extend([0.0] * body.policy.network.output_size)
        return np.array(status)

    def step(self, episode: Episode) -> Tuple[List[Optional[np.ndarray]], bool]:
        statuses: List[Optional[np.ndarray]] = []
        # partners read last tick's outputs, whatever order bodies decide in
        outputs = [b.policy.last_output() for b in episode.bodies]
        for k, body in enumerate(episode.bodies):
            if not body.alive or body.achieved_goal:
                statuses.append(None)
                continue
            status = self.status_vector(episode, k, outputs)
            statuses.append(status)
            desire = body.policy.decide(status)
            occupied = [(b.row, b.col) for b in episode.bodies if b is not body]
            landscape = body.policy.react(desire, episode.state.partial_bridge, episode.grid, occupied)
            self._move(episode, body, landscape)
        episode.ticks += 1
        done = all(b.achieved_goal for b in episode.bodies) or not any(b.alive for b in episode.bodies)
        return statuses, done

    def evaluate(self, episode: Episode) -> List[EpisodeResult]:
        results = []
        for body in episode.bodies:
            results.append(EpisodeResult(
                fitness=self.fitness_fn(body, self.time_steps),
                moves=body.moves,
                alive=body.alive,
                has_carried=body.has_carried,
                dropped_in_river=body.dropped_in_river,
                stones_placed=body.stones_placed,
                resources_found=body.resources_found,
                achieved_goal=body.achieved_goal,
            ))
        return results

    def run(self, policies: Sequence[Policy]) -> List[EpisodeResult]:
        """One complete episode under the tick budget."""
        episode = self.reset_episode(policies)
        for _ in range(self.time_steps):
            _, done = self.step(episode)
            if done:
                break
        return self.evaluate(episode)

    # ─── Physical rules ─────────────────────────────────────────────────────
    def _move(self, episode: Episode, body: AgentBody, landscape: np.ndarray) -> None:
        best: Optional[Tuple[int, int]] = None
        best_value = landscape[body.row, body.col]
        for di, dj in MOORE_OFFSETS:
            i, j = body.row + di, body.col + dj
            if 0 <= i < self.rows and 0 <= j < self.cols and landscape[i, j] > best_value:
                best, best_value = (i, j), landscape[i, j]
        if best is None:
            return

        cell = episode.grid[best[0]][best[1]]
        obj = cell.obj
        body.moves += 1
        if isinstance(obj, Water):
            if body.carrying:
                # stone goes into the river, agent stays on the bank
                body.carrying = False
                body.dropped_in_river = True
                body.stones_placed += 1
                episode.state.partial_bridge = True
                if not obj.add_stone():
                    cell.obj = None
                    logger.debug(f"[WORLD] bridge completed at ({cell.row}, {cell.col})")
                return
            body.row, body.col = best
            body.alive = False
            return

        body.row, body.col = best
        if isinstance(obj, Resource) and any(obj is t for t in body.targets):
            cell.obj = None
            body.resources_found += 1
            if body.resources_found == len(body.targets):
                body.achieved_goal = True
        elif isinstance(obj, Stone) and not body.carrying:
            cell.obj = None
            body.carrying = True
            body.has_carried = True
