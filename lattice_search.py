"""
Motion primitive lattice planner.
Weighted A* over states reached by constant-control primitives, with
quantised state keys, kinodynamic pruning and map collision checks.
Supports real-time operation with time budgets and an anytime mode that
tightens epsilon while time remains.
"""

import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from math import factorial
from typing import Dict, List, Optional, Tuple

import numpy as np

import mp_config as cfg
from collision import primitive_collision_free
from control_lattice import ControlLattice
from heuristics import LatticeHeuristic
from mp_config import ConfigurationError, PlannerConfig
from primitive import Primitive
from state import State
from trajectory import Trajectory

logger = logging.getLogger(__name__)

# Expansions between debug progress messages
PROGRESS_INTERVAL = 1000

# Smallest cost improvement that re-opens a closed key
REOPEN_TOL = 1e-9

# Attributes describing one query, saved and restored across anytime rounds
QUERY_FIELDS = ('status', 'nodes', 'keys', 'open_set', 'expanded_states', 'iterations',
                'nodes_expanded', 'best_index', 'goal_index', 'epsilon', 'cost_bound',
                '_counter', '_started_at')


class PlannerStatus(Enum):
    """Status of the planner."""
    NOT_STARTED = "not_started"
    PLANNING = "planning"
    PATH_FOUND = "path_found"
    NO_PATH = "no_path"
    BUDGET_EXHAUSTED = "budget_exhausted"
    TIME_EXPIRED = "time_expired"
    CANCELLED = "cancelled"


class NodeStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class SearchNode:
    """Arena entry; parent is an index into the same arena (-1 for the start)."""
    key: Tuple[int, ...]
    state: State
    g: float = float('inf')
    h: float = 0.0
    parent: int = -1
    primitive: Optional[Primitive] = None
    status: NodeStatus = NodeStatus.OPEN


@dataclass
class PlanningResult:
    """Outcome of a planning query. A failed search is a normal result."""
    success: bool
    status: PlannerStatus
    trajectory: Optional[Trajectory]
    expanded_states: List[State] = field(default_factory=list)
    total_cost: float = float('inf')
    nodes_expanded: int = 0
    planning_time: float = 0.0
    epsilon: float = 1.0


def goal_reached(state: State, goal: State, tolerances) -> bool:
    """
    True when state lies in the goal region.

    Position is always compared when the goal constrains it; velocity and
    acceleration only when the goal constrains them and their tolerance is
    positive.
    """
    tol_pos, tol_vel, tol_acc = tolerances
    if goal.use_pos and np.linalg.norm(state.pos - goal.pos) > tol_pos:
        return False
    if goal.use_vel and tol_vel > 0 and np.linalg.norm(state.vel - goal.vel) > tol_vel:
        return False
    if goal.use_acc and tol_acc > 0 and np.linalg.norm(state.acc - goal.acc) > tol_acc:
        return False
    return True


def _is_cancelled(cancel) -> bool:
    if cancel is None:
        return False
    if hasattr(cancel, "is_set"):
        return bool(cancel.is_set())
    return bool(cancel())


def _field_dim(occupancy_field) -> int:
    return int(np.asarray(occupancy_field.dim).shape[0])


class LatticeSearch:
    """
    Motion primitive planner over an occupancy field.

    Parameters
    ----------
    occupancy_field : OccupancyField
        Read-only map. Only is_free / float_to_int / points_free and the
        origin, upper, dim, resolution attributes are used.
    config : PlannerConfig, optional
        Planner parameters, module defaults when omitted.
    lattice : ControlLattice, optional
        Explicit control set; otherwise built from the config.
    """

    def __init__(self, occupancy_field, config: Optional[PlannerConfig] = None,
                 lattice: Optional[ControlLattice] = None):
        self.field = occupancy_field
        self.config = config if config is not None else PlannerConfig()
        self.lattice = lattice

        # Planning state, owned by the current query
        self.status = PlannerStatus.NOT_STARTED
        self.nodes: List[SearchNode] = []
        self.keys: Dict[Tuple[int, ...], int] = {}
        self.open_set = []
        self.expanded_states: List[State] = []
        self.start = None
        self.goal = None
        self.iterations = 0
        self.nodes_expanded = 0
        self.best_index = -1
        self.goal_index = -1
        self.epsilon = self.config.epsilon
        self.cost_bound = float('inf')
        self._counter = itertools.count()
        self._started_at = 0.0

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _prepare(self, start: State, goal: State):
        """Validate the query and derive per-query parameters."""
        config = self.config.validate()

        dim = start.dim
        if goal.dim != dim:
            raise ConfigurationError(f"start is {dim}D but goal is {goal.dim}D")
        if _field_dim(self.field) != dim:
            raise ConfigurationError(f"map is {_field_dim(self.field)}D but states are {dim}D")

        lattice = self.lattice if self.lattice is not None else config.build_lattice(dim)
        if len(lattice) == 0:
            raise ConfigurationError("control lattice is empty")
        if lattice.dim != dim:
            raise ConfigurationError(f"controls are {lattice.dim}D but states are {dim}D")
        if lattice.dt <= 0:
            raise ConfigurationError(f"lattice dt must be positive, got {lattice.dt}")

        order = config.control_order or start.control_order()
        if order not in (1, 2, 3, 4):
            raise ConfigurationError(f"unsupported control order {order}")

        if goal.use_vel and config.vmax > 0 and np.any(np.abs(goal.vel) > config.vmax):
            raise ConfigurationError(f"goal velocity {goal.vel} exceeds vmax {config.vmax}")
        if goal.use_acc and config.amax > 0 and np.any(np.abs(goal.acc) > config.amax):
            raise ConfigurationError(f"goal acceleration {goal.acc} exceeds amax {config.amax}")
        if goal.use_pos and not self._inside_map(goal.pos):
            raise ConfigurationError(f"goal {goal.pos} lies outside the map")
        if not self.field.is_free(self.field.float_to_int(start.pos)):
            raise ConfigurationError(f"start {start.pos} is not in a free cell")

        if config.vmax > 0 and order > 1 and np.any(np.abs(start.vel) > config.vmax):
            logger.warning(f"start velocity {start.vel} already exceeds vmax {config.vmax}")

        self.lattice_used = lattice
        self.dt = lattice.dt
        self.control_order = order
        self.weights = config.edge_weights(order)
        rho = self.weights[order] if order < len(self.weights) else 0.0
        self.heuristic = LatticeHeuristic(goal, order, config.vmax, config.w, rho,
                                          config.goal_tolerances())
        self.limits = config.limits()
        self.key_resolution = self._key_resolution(lattice, order)

    def _inside_map(self, pt) -> bool:
        pt = np.asarray(pt, dtype=float)
        return bool(np.all(pt >= self.field.origin) and np.all(pt < self.field.upper))

    def _key_resolution(self, lattice: ControlLattice, order: int) -> List[float]:
        """
        Cell sizes used to quantise (pos, vel, acc, jrk) into a node key.

        Position defaults to the map resolution. A derivative i below the
        control order moves on a lattice with spacing du * dt^(order-i) /
        (order-i)!; half of that keeps distinct lattice values apart.
        """
        values = np.unique(np.round(lattice.enumerate(), 12))
        gaps = np.diff(values)
        du = float(gaps.min()) if gaps.size else max(lattice.umax, 1.0)

        resolution = [self.field.resolution]
        for i in range(1, 4):
            n = max(order - i, 1)
            resolution.append(0.5 * du * self.dt ** n / factorial(n))

        if self.config.key_resolution is not None:
            for i, r in enumerate(self.config.key_resolution[:4]):
                if r is not None:
                    resolution[i] = float(r)
        return resolution

    def _key(self, state: State) -> Tuple[int, ...]:
        key = []
        for i in range(self.control_order):
            cells = np.floor(state.derivative(i) / self.key_resolution[i] + 0.5)
            key.extend(int(c) for c in cells)
        return tuple(key)

    def initialize_planning(self, start: State, goal: State, epsilon: Optional[float] = None,
                            cost_bound: float = float('inf')):
        """
        Initialize planning state for a new problem.

        Parameters
        ----------
        start : State
            Start state; its flags select the control order when the config
            does not.
        goal : State
            Goal state; its flags select the matched components.
        epsilon : float, optional
            Heuristic inflation for this query, config value when omitted.
        cost_bound : float
            Successors whose g + h reaches this bound are pruned (anytime mode).

        Raises
        ------
        ConfigurationError
            If the parameters or the query cannot be planned at all.
        """
        self._prepare(start, goal)

        self.start = start
        self.goal = goal
        self.epsilon = self.config.epsilon if epsilon is None else float(epsilon)
        if self.epsilon < 1.0:
            raise ConfigurationError(f"epsilon must be >= 1, got {self.epsilon}")
        self.cost_bound = cost_bound

        self.nodes = []
        self.keys = {}
        self.open_set = []
        self.expanded_states = []
        self._counter = itertools.count()
        self.iterations = 0
        self.nodes_expanded = 0
        self.goal_index = -1

        start_node = SearchNode(key=self._key(start), state=start, g=0.0, h=self.heuristic(start))
        self.nodes.append(start_node)
        self.keys[start_node.key] = 0
        self._push(0)
        self.best_index = 0

        self.status = PlannerStatus.PLANNING
        self._started_at = time.perf_counter()

        logger.info(f"Lattice search initialized: {start.pos} -> {goal.pos}, "
                    f"{len(self.lattice_used)} controls, dt={self.dt}, eps={self.epsilon}")
        logger.debug(f"Control order {self.control_order}, key resolution {self.key_resolution}")

    def _push(self, index: int):
        node = self.nodes[index]
        f = node.g + self.epsilon * node.h
        # ties on f go to the larger g, then to insertion order
        heapq.heappush(self.open_set, (f, -node.g, next(self._counter), index))

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def step(self, time_budget: float = None, cancel=None) -> PlannerStatus:
        """
        Execute planning for a time budget.

        Parameters
        ----------
        time_budget : float, optional
            Time budget in seconds. If None, uses cfg.TIME_BUDGET_PER_STEP
        cancel : callable or threading.Event, optional
            Checked once per expansion; a truthy value stops the query.

        Returns
        -------
        PlannerStatus
            Current status; TIME_EXPIRED means this slice ran out while the
            query itself is still PLANNING.
        """
        if self.status != PlannerStatus.PLANNING:
            return self.status

        if time_budget is None:
            time_budget = cfg.TIME_BUDGET_PER_STEP

        start_time = time.perf_counter()
        iterations_this_step = 0
        max_expansions = self.config.max_expansions

        while self.open_set:
            if _is_cancelled(cancel):
                self.status = PlannerStatus.CANCELLED
                logger.info(f"Lattice search cancelled after {self.nodes_expanded} expansions")
                return self.status

            if max_expansions is not None and max_expansions >= 0 and \
                    self.nodes_expanded >= max_expansions:
                self.status = PlannerStatus.BUDGET_EXHAUSTED
                logger.info(f"Lattice search hit the expansion budget ({max_expansions})")
                return self.status

            _, neg_g, _, index = heapq.heappop(self.open_set)
            current = self.nodes[index]

            # Skip stale heap entries
            if current.status is NodeStatus.CLOSED or -neg_g != current.g:
                continue

            self.iterations += 1
            iterations_this_step += 1

            if current.h < self.nodes[self.best_index].h:
                self.best_index = index

            if goal_reached(current.state, self.goal, self.config.goal_tolerances()):
                self.goal_index = index
                self.best_index = index
                self.status = PlannerStatus.PATH_FOUND
                logger.info(f"Lattice search found path: {self.nodes_expanded} expansions, "
                            f"cost {current.g:.3f}")
                return self.status

            current.status = NodeStatus.CLOSED
            self.expanded_states.append(current.state)
            self.nodes_expanded += 1

            self._expand(index)
            if self.nodes_expanded % PROGRESS_INTERVAL == 0:
                logger.debug(f"{self.nodes_expanded} expansions, open {len(self.open_set)}, "
                             f"best h {self.nodes[self.best_index].h:.3f}")

            if iterations_this_step % cfg.ITERATIONS_PER_CHECK == 0:
                if time.perf_counter() - start_time >= time_budget:
                    return PlannerStatus.TIME_EXPIRED

        self.status = PlannerStatus.NO_PATH
        logger.info(f"Lattice search exhausted after {self.nodes_expanded} expansions")
        return self.status

    def _expand(self, index: int):
        """Generate, prune and queue the successors of a closed node."""
        current = self.nodes[index]
        config = self.config

        for u in self.lattice_used:
            primitive = Primitive(current.state, u, self.dt, self.control_order, limits=self.limits)
            if not primitive.is_validated():
                continue

            successor = primitive.end_state()
            key = self._key(successor)
            g_new = current.g + primitive.cost(self.weights, config.w)

            existing = self.keys.get(key)
            if existing is not None:
                other = self.nodes[existing]
                if other.g <= g_new:
                    continue
                if other.status is NodeStatus.CLOSED:
                    # at eps = 1 a cheaper route re-opens the key as a fresh
                    # node; the closed one keeps its subtree
                    if self.epsilon > 1.0 or other.g - g_new < REOPEN_TOL:
                        continue
                    existing = None

            if not primitive_collision_free(self.field, primitive):
                continue

            h = self.heuristic(successor)
            if g_new + h >= self.cost_bound:
                continue

            if existing is None:
                existing = len(self.nodes)
                self.nodes.append(SearchNode(key=key, state=successor))
                self.keys[key] = existing

            node = self.nodes[existing]
            node.state = successor
            node.g = g_new
            node.h = h
            node.parent = index
            node.primitive = primitive
            self._push(existing)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _extract_path(self, index: int) -> Trajectory:
        """Concatenate primitives by backtracking from a node to the start."""
        primitives = []
        current = index
        while current >= 0 and self.nodes[current].primitive is not None:
            primitives.append(self.nodes[current].primitive)
            current = self.nodes[current].parent
        primitives.reverse()

        if not primitives:
            # goal already satisfied at the start: hold still for zero time
            hold = Primitive(self.start, np.zeros(self.start.dim), 0.0, self.control_order)
            return Trajectory([hold])
        return Trajectory(primitives, strict=self.config.check_continuity)

    def get_traj(self) -> Optional[Trajectory]:
        if self.status != PlannerStatus.PATH_FOUND:
            return None
        return self._extract_path(self.goal_index)

    def get_current_path(self) -> Optional[Trajectory]:
        """
        Trajectory to the best node found so far (closest by heuristic),
        or the complete one once the goal is reached.
        """
        if self.status == PlannerStatus.NOT_STARTED or self.best_index < 0:
            return None
        return self._extract_path(self.best_index)

    def get_expanded_states(self) -> List[State]:
        return list(self.expanded_states)

    def get_close_set(self) -> np.ndarray:
        """Positions of the expanded states, in expansion order."""
        if not self.expanded_states:
            return np.zeros((0, self.start.dim if self.start is not None else 0))
        return np.vstack([s.pos for s in self.expanded_states])

    def get_planning_info(self) -> dict:
        """Get current planning statistics."""
        best = self.nodes[self.best_index] if self.best_index >= 0 else None
        return {
            'status': self.status,
            'iterations': self.iterations,
            'nodes_expanded': self.nodes_expanded,
            'open_set_size': len(self.open_set),
            'nodes_created': len(self.nodes),
            'epsilon': self.epsilon,
            'best_node_heuristic': best.h if best is not None else float('inf'),
        }

    def _result(self) -> PlanningResult:
        success = self.status == PlannerStatus.PATH_FOUND
        trajectory = self.get_traj() if success else None
        total_cost = self.nodes[self.goal_index].g if success else float('inf')
        return PlanningResult(
            success=success,
            status=self.status,
            trajectory=trajectory,
            expanded_states=list(self.expanded_states),
            total_cost=total_cost,
            nodes_expanded=self.nodes_expanded,
            planning_time=time.perf_counter() - self._started_at,
            epsilon=self.epsilon,
        )

    def _save_query(self) -> dict:
        # initialize_planning builds fresh containers, so references suffice
        return {name: getattr(self, name) for name in QUERY_FIELDS}

    def _restore_query(self, saved: dict):
        for name, value in saved.items():
            setattr(self, name, value)

    # ------------------------------------------------------------------
    # Blocking entry points
    # ------------------------------------------------------------------

    def _run(self, deadline: Optional[float], cancel):
        while self.status == PlannerStatus.PLANNING:
            if deadline is None:
                self.step(time_budget=1.0, cancel=cancel)
                continue
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                self.status = PlannerStatus.TIME_EXPIRED
                logger.info(f"Lattice search ran out of time after {self.nodes_expanded} expansions")
                break
            self.step(time_budget=min(cfg.TIME_BUDGET_PER_STEP, remaining), cancel=cancel)

    def plan(self, start: State, goal: State, max_time: float = None,
             cancel=None) -> PlanningResult:
        """
        Plan complete trajectory (blocking call).

        Parameters
        ----------
        start : State
            Start state
        goal : State
            Goal state
        max_time : float, optional
            Maximum planning time. If None, uses the config value (unlimited
            when that is None too)
        cancel : callable or threading.Event, optional
            Cooperative cancellation flag

        Returns
        -------
        PlanningResult
            success is False when the search ran out of states, budget, time
            or was cancelled; only ConfigurationError is raised.
        """
        self.initialize_planning(start, goal)

        if max_time is None:
            max_time = self.config.max_time
        deadline = None if max_time is None else self._started_at + max_time

        self._run(deadline, cancel)
        result = self._result()
        logger.info(f"Planning finished: {result.status.value}, {result.nodes_expanded} expansions, "
                    f"{result.planning_time:.3f}s")
        return result

    def plan_anytime(self, start: State, goal: State, epsilons=None, max_time: float = None,
                     cancel=None) -> PlanningResult:
        """
        Run weighted searches with a decreasing epsilon schedule.

        Each round prunes successors whose g + h cannot beat the incumbent
        cost. The heuristic never overestimates the cost into the goal
        region, so a round that exhausts its open set shows that the lattice
        (under the key quantisation) holds nothing cheaper. The best result
        found is returned with the expansions of all rounds, and the planner
        is left in the state of the round that produced it, so get_traj()
        and get_planning_info() agree with the result.

        Parameters
        ----------
        epsilons : sequence of float, optional
            Schedule, config.epsilon_schedule when omitted.
        max_time : float, optional
            Overall time limit across rounds.
        cancel : callable or threading.Event, optional
            Cooperative cancellation flag.
        """
        schedule = list(epsilons) if epsilons is not None else list(self.config.epsilon_schedule)
        if not schedule:
            raise ConfigurationError("epsilon schedule is empty")

        if max_time is None:
            max_time = self.config.max_time
        began = time.perf_counter()
        deadline = None if max_time is None else began + max_time

        best: Optional[PlanningResult] = None
        best_query = None
        last: Optional[PlanningResult] = None
        expanded: List[State] = []
        total_expanded = 0

        for eps in schedule:
            bound = best.total_cost if best is not None else float('inf')
            self.initialize_planning(start, goal, epsilon=eps, cost_bound=bound)
            self._run(deadline, cancel)
            last = self._result()
            expanded.extend(last.expanded_states)
            total_expanded += last.nodes_expanded

            if not last.success:
                # NO_PATH here means nothing cheaper than the incumbent exists;
                # time, budget and cancellation end the schedule as well
                break
            best = last
            best_query = self._save_query()
            logger.info(f"Anytime round eps={eps}: cost {last.total_cost:.3f}")

        if best is not None and last is not best:
            self._restore_query(best_query)
        result = best if best is not None else last
        result.expanded_states = expanded
        result.nodes_expanded = total_expanded
        result.planning_time = time.perf_counter() - began
        return result
