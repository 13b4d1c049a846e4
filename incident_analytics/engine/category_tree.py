"""Category hierarchy — parent links validated to stay acyclic."""

from typing import Mapping, Optional

from sqlalchemy import select

from ..exceptions import CategoryCycleError, DataIntegrityError
from ..models.category import Category


class CategoryTree:
    """In-memory view of category parent links."""

    def __init__(self, parents: Mapping[int, Optional[int]]):
        self._parents = dict(parents)

    @classmethod
    async def load(cls, session) -> "CategoryTree":
        result = await session.execute(select(Category.id, Category.parent_id))
        return cls({row[0]: row[1] for row in result.all()})

    def __contains__(self, category_id: int) -> bool:
        return category_id in self._parents

    def ancestors(self, category_id: int) -> list[int]:
        """Parent chain from the immediate parent up to the root."""
        chain = []
        seen = {category_id}
        current = self._parents.get(category_id)
        while current is not None:
            if current in seen:
                raise DataIntegrityError(f"Existing category cycle through {current}")
            chain.append(current)
            seen.add(current)
            current = self._parents.get(current)
        return chain

    def descendants(self, category_id: int) -> set[int]:
        children: dict[int, list[int]] = {}
        for child, parent in self._parents.items():
            if parent is not None:
                children.setdefault(parent, []).append(child)
        found: set[int] = set()
        stack = list(children.get(category_id, []))
        while stack:
            node = stack.pop()
            if node not in found:
                found.add(node)
                stack.extend(children.get(node, []))
        return found

    def would_create_cycle(self, child_id: int, parent_id: Optional[int]) -> bool:
        if parent_id is None:
            return False
        return parent_id == child_id or child_id in self.ancestors(parent_id)

    def validate_parent(self, child_id: Optional[int], parent_id: Optional[int]) -> None:
        """Raise unless ``parent_id`` is a valid parent for ``child_id``.

        ``child_id`` is None for a category that does not exist yet.
        """
        if parent_id is None:
            return
        if parent_id not in self._parents:
            raise DataIntegrityError(f"Parent category {parent_id} does not exist")
        if child_id is not None and self.would_create_cycle(child_id, parent_id):
            raise CategoryCycleError(
                f"Setting parent of category {child_id} to {parent_id} would create a cycle"
            )

    def set_parent(self, child_id: int, parent_id: Optional[int]) -> None:
        self.validate_parent(child_id, parent_id)
        self._parents[child_id] = parent_id
