# cells.py — contents of the River Crossing grid world

from typing import Optional


class CellObject:
    def __init__(self, row: int, col: int):
        self.row = row
        self.col = col

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.row}, {self.col})"


class Resource(CellObject):
    pass


class Stone(CellObject):
    pass


class Water(CellObject):
    def __init__(self, row: int, col: int, depth: int):
        super().__init__(row, col)
        self.depth = depth

    def add_stone(self) -> bool:
        """Lower the water by one stone; True while some depth remains."""
        self.depth -= 1
        return self.depth > 0


class Cell:
    __slots__ = ("row", "col", "obj")

    def __init__(self, row: int, col: int, obj: Optional[CellObject] = None):
        self.row = row
        self.col = col
        self.obj = obj

    def is_empty(self) -> bool:
        return self.obj is None

    def __repr__(self) -> str:
        return f"Cell({self.row}, {self.col}, {self.obj!r})"
