"""2D binary cellular automaton driven by a 512-entry Moore-neighborhood lookup table."""

import numpy as np
from typing import List, Optional, Sequence, Tuple

from .exceptions import ConfigurationError, IntegrityError

RULE_SIZE = 512  # 2^9 configurations of a cell and its 8 neighbors
MIN_GRID_SIZE = 3

# Bit order of the neighborhood index, most significant bit first:
# NW, N, NE, W, C, E, SW, S, SE. Changing it invalidates every stored rule.
NEIGHBORHOOD_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1), (0, 0), (0, 1),
    (1, -1), (1, 0), (1, 1),
)  # (dy, dx)


class Rule:
    """Transition function stored as 512 read-only bits, indexed by neighborhood."""

    __slots__ = ("bits",)

    def __init__(self, bits: Sequence[int]):
        arr = np.array(bits, dtype=np.int64)
        if arr.ndim != 1 or arr.shape[0] != RULE_SIZE:
            raise IntegrityError(f"Rule must have {RULE_SIZE} genes, got shape {arr.shape}")
        if np.any((arr != 0) & (arr != 1)):
            raise IntegrityError("Rule genes must be 0 or 1")
        arr = arr.astype(np.uint8)
        arr.flags.writeable = False
        self.bits = arr

    @classmethod
    def random(cls, rng: Optional[np.random.Generator] = None, density: float = 0.35) -> "Rule":
        """Generate a random rule where each gene is 1 with the given probability."""
        if rng is None:
            rng = np.random.default_rng()
        return cls((rng.random(RULE_SIZE) < density).astype(np.uint8))

    @classmethod
    def zeros(cls) -> "Rule":
        return cls(np.zeros(RULE_SIZE, dtype=np.uint8))

    @classmethod
    def from_string(cls, rule_str: str) -> "Rule":
        """Parse the 128-character hex form produced by to_string."""
        rule_str = rule_str.strip().lower()
        if len(rule_str) != RULE_SIZE // 4:
            raise IntegrityError(f"Hex rule must have {RULE_SIZE // 4} characters, got {len(rule_str)}")
        try:
            value = int(rule_str, 16)
        except ValueError as exc:
            raise IntegrityError(f"Invalid hex rule: {rule_str!r}") from exc
        return cls([(value >> (RULE_SIZE - 1 - i)) & 1 for i in range(RULE_SIZE)])

    @classmethod
    def from_life_like(cls, rule_str: str) -> "Rule":
        """Expand an outer-totalistic rule like 'B3/S23' into a full lookup table."""
        rule_str = rule_str.upper().replace(" ", "")
        birth_part = ""
        survival_part = ""
        for part in rule_str.split("/"):
            if part.startswith("B"):
                birth_part = part[1:]
            elif part.startswith("S"):
                survival_part = part[1:]

        birth = {int(c) for c in birth_part if c.isdigit()}
        survival = {int(c) for c in survival_part if c.isdigit()}

        center_bit = 8 - NEIGHBORHOOD_OFFSETS.index((0, 0))
        bits = np.zeros(RULE_SIZE, dtype=np.uint8)
        for index in range(RULE_SIZE):
            alive = (index >> center_bit) & 1
            neighbors = bin(index).count("1") - alive
            if (alive and neighbors in survival) or (not alive and neighbors in birth):
                bits[index] = 1
        return cls(bits)

    def to_string(self) -> str:
        """Hex representation, gene 0 is the most significant bit."""
        value = 0
        for bit in self.bits:
            value = (value << 1) | int(bit)
        return f"{value:0{RULE_SIZE // 4}x}"

    def to_list(self) -> List[int]:
        return [int(b) for b in self.bits]

    def lookup(self, index: int) -> int:
        return int(self.bits[index])

    def lambda_parameter(self) -> float:
        """Langton's lambda: fraction of configurations that map to a live cell."""
        return float(self.bits.mean())

    def __len__(self):
        return RULE_SIZE

    def __getitem__(self, index):
        return self.bits[index]

    def __hash__(self):
        return hash(self.bits.tobytes())

    def __eq__(self, other):
        if not isinstance(other, Rule):
            return False
        return np.array_equal(self.bits, other.bits)

    def __repr__(self):
        return f"Rule({self.to_string()[:16]}..., lambda={self.lambda_parameter():.3f})"


def lookup(rule: Rule, index: int) -> int:
    """Next state for a packed neighborhood index in [0, 511]."""
    return rule.lookup(index)


def check_grid_size(width: int, height: int):
    if width < MIN_GRID_SIZE or height < MIN_GRID_SIZE:
        raise ConfigurationError(
            f"Grid must be at least {MIN_GRID_SIZE}x{MIN_GRID_SIZE}, got {width}x{height}"
        )


def neighborhood_index(grid: np.ndarray, x: int, y: int) -> int:
    """Pack the 3x3 toroidal neighborhood of cell (x, y) into an integer."""
    height, width = grid.shape
    index = 0
    for dy, dx in NEIGHBORHOOD_OFFSETS:
        index = (index << 1) | int(grid[(y + dy) % height, (x + dx) % width])
    return index


def neighborhood_indices(grid: np.ndarray) -> np.ndarray:
    """Neighborhood index of every cell, computed with toroidal rolls."""
    indices = np.zeros(grid.shape, dtype=np.intp)
    for dy, dx in NEIGHBORHOOD_OFFSETS:
        indices <<= 1
        indices |= np.roll(grid, (-dy, -dx), axis=(0, 1))
    return indices


def step(grid: np.ndarray, rule: Rule) -> np.ndarray:
    """Advance the grid by one generation. Always returns a new array."""
    height, width = grid.shape
    check_grid_size(width, height)
    return rule.bits[neighborhood_indices(grid)]


def run_steps(grid: np.ndarray, rule: Rule, steps: int) -> np.ndarray:
    """Apply step() repeatedly and return the final grid."""
    current = np.array(grid, dtype=np.uint8)
    for _ in range(steps):
        current = step(current, rule)
    return current


def random_grid(
    width: int,
    height: int,
    density: float = 0.5,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Grid where each cell is alive independently with the given probability."""
    check_grid_size(width, height)
    if rng is None:
        rng = np.random.default_rng()
    return (rng.random((height, width)) < density).astype(np.uint8)


class CellularAutomaton:
    """2D cellular automaton with Moore neighborhood and toroidal boundaries."""

    def __init__(self, width: int = 89, height: int = 89, rule: Optional[Rule] = None):
        check_grid_size(width, height)
        self.width = width
        self.height = height
        self.rule = rule or Rule.from_life_like("B3/S23")  # Default to Game of Life
        self.grid = np.zeros((height, width), dtype=np.uint8)
        self.generation = 0
        self._history: List[np.ndarray] = []

    def randomize(self, density: float = 0.5, rng: Optional[np.random.Generator] = None):
        """Fill grid with random cells at given density."""
        self.grid = random_grid(self.width, self.height, density, rng)
        self.generation = 0
        self._history = []

    def clear(self):
        """Clear the grid."""
        self.grid = np.zeros((self.height, self.width), dtype=np.uint8)
        self.generation = 0
        self._history = []

    def set_pattern(self, pattern: np.ndarray, x: int = 0, y: int = 0):
        """Place a pattern on the grid at position (x, y), wrapping at the edges."""
        pattern = np.asarray(pattern, dtype=np.uint8)
        ph, pw = pattern.shape
        for dy in range(ph):
            for dx in range(pw):
                self.grid[(y + dy) % self.height, (x + dx) % self.width] = pattern[dy, dx]

    def step(self, record_history: bool = False):
        """Advance simulation by one generation."""
        if record_history:
            self._history.append(self.grid.copy())
        self.grid = step(self.grid, self.rule)
        self.generation += 1

    def run(self, steps: int, record_history: bool = False) -> List[np.ndarray]:
        """Run simulation for multiple steps."""
        for _ in range(steps):
            self.step(record_history=record_history)
        if record_history:
            self._history.append(self.grid.copy())
        return self._history

    def get_history(self) -> List[np.ndarray]:
        """Get recorded history."""
        return self._history

    def population(self) -> int:
        """Count live cells."""
        return int(np.sum(self.grid))

    def density(self) -> float:
        """Calculate population density."""
        return self.population() / (self.width * self.height)
