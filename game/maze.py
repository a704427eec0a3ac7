"""
Deterministic maze generation.

Both clients of a room build the maze for a level locally from the same
``(width, height, seed)``; the server never sees or sends maze data. The
generator therefore only uses its own seeded LCG and exact integer
arithmetic, so identical inputs give identical walls on every machine.
"""
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from constants import BASE_MAZE_SIZE, MAX_MAZE_SIZE, MAZE_SIZE_STEP

Position = Tuple[int, int]

LCG_MODULUS = 2 ** 31
LCG_MULTIPLIER = 1103515245
LCG_INCREMENT = 12345

# dx, dy, wall on this cell, wall on the neighbour
DIRECTIONS: Dict[str, Tuple[int, int, str, str]] = {
    "up": (0, -1, "top", "bottom"),
    "right": (1, 0, "right", "left"),
    "down": (0, 1, "bottom", "top"),
    "left": (-1, 0, "left", "right"),
}


class SeededRandom:
    """Linear congruential generator over 31 bits."""

    def __init__(self, seed: int):
        self.state = seed % LCG_MODULUS

    def next_state(self) -> int:
        self.state = (LCG_MULTIPLIER * self.state + LCG_INCREMENT) % LCG_MODULUS
        return self.state

    def choice_index(self, n: int) -> int:
        # high bits; the low bits of a power-of-two LCG cycle quickly
        return (self.next_state() * n) >> 31


@dataclass
class Cell:
    x: int
    y: int
    top: bool = True
    right: bool = True
    bottom: bool = True
    left: bool = True

    def walls(self) -> Dict[str, bool]:
        return {"top": self.top, "right": self.right, "bottom": self.bottom, "left": self.left}


class MazeGenerator:
    def __init__(self, width: int, height: int, seed: int):
        if width < 1 or height < 1:
            raise ValueError(f"Maze dimensions must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.seed = seed
        self.rng = SeededRandom(seed)
        self.grid = [[Cell(x, y) for x in range(width)] for y in range(height)]

    def _cell(self, x: int, y: int) -> Optional[Cell]:
        if 0 <= x < self.width and 0 <= y < self.height:
            return self.grid[y][x]
        return None

    def generate(self) -> List[List[Cell]]:
        visited = {(0, 0)}
        stack = [self.grid[0][0]]

        while stack:
            current = stack[-1]
            candidates = []
            # fixed order: top, right, bottom, left
            for direction in ("up", "right", "down", "left"):
                dx, dy, _, _ = DIRECTIONS[direction]
                neighbour = self._cell(current.x + dx, current.y + dy)
                if neighbour is not None and (neighbour.x, neighbour.y) not in visited:
                    candidates.append((direction, neighbour))

            if not candidates:
                stack.pop()
                continue

            direction, neighbour = candidates[self.rng.choice_index(len(candidates))]
            _, _, wall, opposite = DIRECTIONS[direction]
            setattr(current, wall, False)
            setattr(neighbour, opposite, False)
            visited.add((neighbour.x, neighbour.y))
            stack.append(neighbour)

        return self.grid

    def start_position(self) -> Position:
        return (0, 0)

    def end_position(self) -> Position:
        return (self.width - 1, self.height - 1)


def generate(width: int, height: int, seed: int) -> Tuple[List[List[Cell]], Position, Position]:
    """Carve a perfect maze; returns ``(cells, start, end)`` with ``cells[y][x]``."""
    generator = MazeGenerator(width, height, seed)
    cells = generator.generate()
    return cells, generator.start_position(), generator.end_position()


@dataclass
class Maze:
    width: int
    height: int
    seed: int
    cells: List[List[Cell]] = field(repr=False)
    start: Position
    end: Position

    @classmethod
    def build(cls, width: int, height: int, seed: int) -> "Maze":
        cells, start, end = generate(width, height, seed)
        return cls(width=width, height=height, seed=seed, cells=cells, start=start, end=end)

    def cell(self, x: int, y: int) -> Cell:
        return self.cells[y][x]

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def can_move(self, position: Position, direction: str) -> bool:
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction}")
        x, y = position
        dx, dy, wall, _ = DIRECTIONS[direction]
        if not self.in_bounds(x + dx, y + dy):
            return False
        return not getattr(self.cell(x, y), wall)

    def passage_count(self) -> int:
        """Number of carved walls between neighbouring cells."""
        return sum((not c.right) + (not c.bottom) for row in self.cells for c in row)

    def open_neighbours(self, position: Position) -> List[Position]:
        x, y = position
        result = []
        for direction, (dx, dy, _, _) in DIRECTIONS.items():
            if self.can_move(position, direction):
                result.append((x + dx, y + dy))
        return result

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "seed": self.seed,
            "start": {"x": self.start[0], "y": self.start[1]},
            "end": {"x": self.end[0], "y": self.end[1]},
            "cells": [[c.walls() for c in row] for row in self.cells],
        }


def maze_size_for_level(level: int) -> int:
    # level 1 keeps the base size; later levels scale with the level number, so 2 -> 19
    if level <= 1:
        return BASE_MAZE_SIZE
    return min(MAX_MAZE_SIZE, BASE_MAZE_SIZE + level * MAZE_SIZE_STEP)


def seed_for_level(room_code: Optional[str], level: int) -> int:
    """Per-level seed both room members compute independently. Solo play gets a random one."""
    if room_code is None:
        return random.randrange(1, LCG_MODULUS)
    return int(room_code) * 1000 + level


def build_level(room_code: Optional[str], level: int) -> Maze:
    size = maze_size_for_level(level)
    return Maze.build(size, size, seed_for_level(room_code, level))
