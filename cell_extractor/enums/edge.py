"""Edge enum."""

from enum import StrEnum


class Edge(StrEnum):
    """Side of an image scanned for an outer margin."""

    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"

    @property
    def is_vertical(self) -> bool:
        """
        Whether the edge is scanned column by column.

        Returns:
            bool: True for the left and right edges.
        """
        return self in (Edge.LEFT, Edge.RIGHT)

    @property
    def from_end(self) -> bool:
        """
        Whether the scan starts at the last column/row.

        Returns:
            bool: True for the right and bottom edges.
        """
        return self in (Edge.RIGHT, Edge.BOTTOM)
