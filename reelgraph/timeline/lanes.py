"""Display lanes for overlapping text elements.

Lanes are a derived view for drawing the text track; the render graph never
uses them. Packing is greedy first-fit, which can use more lanes than the
optimum for some inputs.
"""

from typing import Iterable

from reelgraph.schemas.timeline import TextElement


def overlaps(a: TextElement, b: TextElement) -> bool:
    return not (a.position_end <= b.position_start or b.position_end <= a.position_start)


def assign_lanes(elements: Iterable[TextElement]) -> dict[str, int]:
    """Map each text element id to a zero-based lane.

    Elements are visited by (z_index, position_start), ties kept in input
    order, and each goes into the first lane where it overlaps nothing.
    """
    ordered = sorted(elements, key=lambda e: (e.z_index, e.position_start))
    lanes: list[list[TextElement]] = []
    assignment: dict[str, int] = {}
    for element in ordered:
        for index, lane in enumerate(lanes):
            if not any(overlaps(element, placed) for placed in lane):
                lane.append(element)
                assignment[element.id] = index
                break
        else:
            lanes.append([element])
            assignment[element.id] = len(lanes) - 1
    return assignment


def lane_count(elements: Iterable[TextElement]) -> int:
    assignment = assign_lanes(elements)
    return max(assignment.values(), default=-1) + 1
