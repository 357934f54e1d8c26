"""
Block reference expansion.

Replaces every INSERT with transformed copies of its block's entities.
Each recursion branch carries the tuple of block names above it; a name
that shows up again in its own ancestry ends that branch with a
CycleError record. Block definitions are never modified.
"""

import logging
from dataclasses import dataclass, field, replace

from . import matrix as mx
from .config import DEFAULT_MAX_BLOCK_DEPTH
from .entities import DEFAULT_LAYER, Insert
from .errors import CycleError

logger = logging.getLogger(__name__)

BYBLOCK = 0


@dataclass
class ExpansionResult:
    entities: list = field(default_factory=list)
    cycles: list = field(default_factory=list)
    messages: list = field(default_factory=list)
    missing_blocks: set = field(default_factory=set)


class BlockExpander:
    def __init__(self, max_depth=DEFAULT_MAX_BLOCK_DEPTH):
        self.max_depth = max_depth

    def expand(self, drawing, entities=None, result=None):
        """
        Flatten ``entities`` (default: the drawing's top-level entities).

        Passing a ``result`` appends to it, which lets the pipeline expand a
        drawing chunk by chunk while sharing one set of warnings.
        """
        result = result if result is not None else ExpansionResult()
        seen_cycles = {c.path + (c.block,) for c in result.cycles}
        for entity in drawing.entities if entities is None else entities:
            self._expand(drawing, entity, None, (), result, seen_cycles)
        return result

    def _expand(self, drawing, entity, matrix, path, result, seen_cycles, parent=None):
        if parent is not None:
            entity = _inherit(entity, parent)
        if not isinstance(entity, Insert):
            result.entities.append(entity if matrix is None else entity.transformed(matrix))
            return

        name = entity.name
        if name in path:
            key = path + (name,)
            if key not in seen_cycles:
                seen_cycles.add(key)
                cycle = CycleError(name, path)
                result.cycles.append(cycle)
                logger.warning("%s", cycle)
            return
        block = drawing.block(name)
        if block is None:
            if name not in result.missing_blocks:
                result.missing_blocks.add(name)
                result.messages.append(f"block {name!r} is not defined")
                logger.warning("block %r referenced by %s is not defined", name, entity.handle)
            result.entities.append(entity if matrix is None else entity.transformed(matrix))
            return
        if len(path) >= self.max_depth:
            result.messages.append(
                f"block nesting deeper than {self.max_depth} at {' -> '.join(path + (name,))}"
            )
            return

        for cell in cell_transforms(entity, block.base_point):
            world = cell if matrix is None else mx.compose(matrix, cell)
            for child in block.entities:
                self._expand(drawing, child, world, path + (name,), result, seen_cycles, parent=entity)


def cell_transforms(insert, base_point=(0.0, 0.0, 0.0)):
    """One matrix per grid cell of an insert; a plain insert has a single cell."""
    placement = mx.block_transform(insert.insert, insert.rotation, insert.scale, base_point)
    if not insert.is_array:
        return [placement]
    turn = mx.rotation_z(insert.rotation)
    matrices = []
    for row in range(insert.row_count):
        for column in range(insert.column_count):
            offset = mx.apply_direction(
                turn, (column * insert.column_spacing, row * insert.row_spacing, 0.0)
            )
            matrices.append(mx.compose(mx.translation(*offset), placement))
    return matrices


def _inherit(entity, insert):
    """Entities on layer 0 take the insert's layer; BYBLOCK color takes its color."""
    changes = {}
    if entity.layer == DEFAULT_LAYER and insert.layer != DEFAULT_LAYER:
        changes["layer"] = insert.layer
    if entity.color == BYBLOCK:
        changes["color"] = insert.color
    return replace(entity, **changes) if changes else entity


def expand(drawing, max_depth=DEFAULT_MAX_BLOCK_DEPTH):
    return BlockExpander(max_depth).expand(drawing)
