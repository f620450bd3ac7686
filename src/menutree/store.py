"""TreeStore: the one object through which a single menu tree is changed."""

import sqlite3
from datetime import datetime
from typing import Any

from menutree.core import menus
from menutree.core.tree import ordering
from menutree.core.tree.move import MoveRequest, move_item, reorder_items
from menutree.core.tree.rebuild import rebuild_subtree
from menutree.core.tree.visibility import filter_visible
from menutree.errors import InvalidParent
from menutree.models.node import IntegrityProblem, Menu, MenuItem
from menutree.protocols import ResourceResolverProtocol


class TreeStore:
    """Owns every node of the tree rooted at ``tree_id``.

    Ids handed to the store must belong to its tree; anything else is
    rejected with InvalidParent before a write happens.
    """

    def __init__(self, conn: sqlite3.Connection, tree_id: int) -> None:
        self.conn = conn
        self.root = menus.get_menu_root(conn, tree_id)
        self.tree_id = self.root.tree_id

    @property
    def menu(self) -> Menu:
        return menus.get_menu(self.conn, self.tree_id)

    def _own(self, item_id: int) -> MenuItem:
        item = ordering.get_item(self.conn, item_id)
        if item.tree_id != self.tree_id:
            msg = f"Menu item {item_id} does not belong to menu {self.tree_id}"
            raise InvalidParent(msg)
        return item

    # Reads

    def get(self, item_id: int) -> MenuItem:
        return self._own(item_id)

    def items(self) -> tuple[MenuItem, ...]:
        """Every node, root first, in range order."""
        return ordering.tree_items(self.conn, self.tree_id)

    def range_of(self, item_id: int) -> tuple[int, int]:
        self._own(item_id)
        return ordering.range_of(self.conn, item_id)

    def children_of(self, item_id: int, *, ordered: bool = True) -> tuple[MenuItem, ...]:
        self._own(item_id)
        return ordering.children_of(self.conn, item_id, ordered=ordered)

    def descendants_of(self, item_id: int) -> tuple[MenuItem, ...]:
        self._own(item_id)
        return ordering.descendants_of(self.conn, item_id)

    def ancestors_of(self, item_id: int) -> tuple[MenuItem, ...]:
        self._own(item_id)
        return ordering.ancestors_of(self.conn, item_id)

    def visible_items(
        self, as_of: datetime, resolver: ResourceResolverProtocol | None = None
    ) -> list[MenuItem]:
        """Effectively visible nodes at ``as_of``; the root counts as a node."""
        return filter_visible(self.items(), as_of, resolver)

    # Writes

    def insert(
        self, fields: dict[str, Any], *, parent_id: int | None = None, position: int | None = None
    ) -> MenuItem:
        payload = dict(fields, parent_id=parent_id, position=position)
        return menus.create_item(self.conn, self.tree_id, payload)

    def update(self, item_id: int, payload: dict[str, Any]) -> MenuItem:
        self._own(item_id)
        return menus.update_item(self.conn, item_id, payload)

    def remove(self, item_id: int) -> int:
        self._own(item_id)
        return menus.delete_item(self.conn, item_id)

    def move(self, item_id: int, new_parent_id: int, new_position: int | None = None) -> MenuItem:
        self._own(item_id)
        return move_item(self.conn, item_id, new_parent_id, new_position)

    def reorder(self, moves: list[MoveRequest]) -> int:
        return reorder_items(self.conn, self.tree_id, moves)

    def rebuild(self, tree: Any, *, root_id: int | None = None) -> tuple[MenuItem, ...]:
        anchor = self.tree_id if root_id is None else self._own(root_id).id
        return rebuild_subtree(self.conn, anchor, tree)

    # Maintenance

    def check(self) -> list[IntegrityProblem]:
        return ordering.check_integrity(self.conn, self.tree_id)

    def fix(self) -> int:
        return ordering.fix_tree(self.conn, self.tree_id)
