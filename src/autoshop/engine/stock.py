"""Inventory stock ledger: item quantities and their movement log."""

import logging
import sqlite3
from typing import Optional

from autoshop.database.connection import DatabaseConnection
from autoshop.database.models import InventoryItem, StockMovement
from autoshop.engine.audit import AuditRecorder
from autoshop.engine.errors import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from autoshop.utils.constants import MOVEMENT_TYPES, REFERENCE_MANUAL

logger = logging.getLogger(__name__)


class StockLedger:
    """Owns inventory quantity.

    Every quantity change goes through :meth:`apply_movement`, which
    pairs it with exactly one ``stock_movements`` row. Movements are
    never edited or deleted; a reversal is the inverse movement.
    Quantity has no floor, so overselling leaves it negative.
    """

    def __init__(self, db: DatabaseConnection, audit: AuditRecorder):
        self.db = db
        self.audit = audit

    # ── Movements ───────────────────────────────────────────────

    def apply_movement(
        self, item_id: int, direction: str, quantity: int,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        notes: Optional[str] = None, conn=None,
    ) -> int:
        """Move ``quantity`` units in or out of an item's stock.

        Joins ``conn`` when given so the movement commits or rolls back
        with the caller's transaction. Returns the movement id.
        """
        if direction not in MOVEMENT_TYPES:
            raise ValidationError(
                "Invalid stock movement",
                [f"Direction must be one of: {', '.join(MOVEMENT_TYPES)}"],
            )
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "Invalid stock movement",
                ["Quantity must be a positive whole number"],
            )

        if conn is None:
            with self.db.get_connection() as own_conn:
                return self._apply(
                    own_conn, item_id, direction, quantity,
                    reference_type, reference_id, notes,
                )
        return self._apply(
            conn, item_id, direction, quantity,
            reference_type, reference_id, notes,
        )

    def _apply(self, conn, item_id, direction, quantity,
               reference_type, reference_id, notes) -> int:
        row = conn.execute(
            "SELECT id, name, quantity, min_stock FROM inventory WHERE id = ?",
            (item_id,),
        ).fetchone()
        if not row:
            raise NotFoundError(f"Inventory item {item_id} not found")

        delta = quantity if direction == "in" else -quantity
        conn.execute(
            "UPDATE inventory SET quantity = quantity + ? WHERE id = ?",
            (delta, item_id),
        )
        cursor = conn.execute(
            "INSERT INTO stock_movements "
            "(inventory_id, movement_type, quantity, reference_type, "
            "reference_id, notes) VALUES (?, ?, ?, ?, ?, ?)",
            (item_id, direction, quantity, reference_type,
             reference_id, notes),
        )

        movement_id = cursor.lastrowid
        new_quantity = row["quantity"] + delta
        self.audit.record(
            "inventory", item_id, "update",
            {"quantity": row["quantity"]},
            {"quantity": new_quantity, "movement_id": movement_id,
             "reference_type": reference_type, "reference_id": reference_id},
            conn=conn,
        )
        if direction == "out" and new_quantity <= (row["min_stock"] or 0):
            logger.warning(
                "Low stock: %s (#%d) now at %d",
                row["name"], item_id, new_quantity,
            )
        return movement_id

    def adjust(self, item_id: int, delta: int,
               notes: Optional[str] = None, conn=None) -> Optional[int]:
        """Manual correction; direction follows the sign of ``delta``.

        A zero delta writes nothing and returns None.
        """
        if delta == 0:
            return None
        direction = "in" if delta > 0 else "out"
        return self.apply_movement(
            item_id, direction, abs(delta),
            reference_type=REFERENCE_MANUAL, notes=notes, conn=conn,
        )

    def get_movements(self, item_id: int, limit: int = 50) -> list[StockMovement]:
        rows = self.db.execute(
            "SELECT * FROM stock_movements WHERE inventory_id = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (item_id, limit),
        )
        return [StockMovement(**dict(r)) for r in rows]

    # ── Items ───────────────────────────────────────────────────

    def create_item(self, item: InventoryItem) -> int:
        """Insert an item; opening stock is booked as an 'in' movement."""
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO inventory "
                    "(sku, name, description, category, quantity, min_stock, "
                    "cost_price, sell_price, supplier_id, location) "
                    "VALUES (?, ?, ?, ?, 0, ?, ?, ?, ?, ?)",
                    (item.sku or None, item.name, item.description,
                     item.category, item.min_stock, item.cost_price,
                     item.sell_price, item.supplier_id, item.location),
                )
                item_id = cursor.lastrowid
                if item.quantity:
                    self.adjust(item_id, item.quantity, "Initial stock",
                                conn=conn)
                self.audit.record(
                    "inventory", item_id, "create", None,
                    _item_row(conn, item_id), conn=conn,
                )
                return item_id
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            raise ConflictError(
                f"An item with SKU '{item.sku}' already exists"
            ) from e

    def update_item(self, item: InventoryItem):
        """Update item fields; a changed quantity becomes a manual movement."""
        try:
            with self.db.get_connection() as conn:
                old = _item_row(conn, item.id)
                if old is None:
                    raise NotFoundError(f"Inventory item {item.id} not found")
                conn.execute(
                    "UPDATE inventory SET sku = ?, name = ?, description = ?, "
                    "category = ?, min_stock = ?, cost_price = ?, "
                    "sell_price = ?, supplier_id = ?, location = ? "
                    "WHERE id = ?",
                    (item.sku or None, item.name, item.description,
                     item.category, item.min_stock, item.cost_price,
                     item.sell_price, item.supplier_id, item.location,
                     item.id),
                )
                self.adjust(item.id, item.quantity - old["quantity"],
                            "Manual adjustment", conn=conn)
                self.audit.record(
                    "inventory", item.id, "update", old,
                    _item_row(conn, item.id), conn=conn,
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            raise ConflictError(
                f"An item with SKU '{item.sku}' already exists"
            ) from e

    def delete_item(self, item_id: int):
        """Delete an item that has never been moved or used on a job."""
        with self.db.get_connection() as conn:
            old = _item_row(conn, item_id)
            if old is None:
                raise NotFoundError(f"Inventory item {item_id} not found")
            used = conn.execute(
                "SELECT "
                "(SELECT COUNT(*) FROM stock_movements WHERE inventory_id = ?)"
                " + (SELECT COUNT(*) FROM job_parts WHERE inventory_id = ?)"
                " AS cnt",
                (item_id, item_id),
            ).fetchone()["cnt"]
            if used:
                raise BusinessRuleError(
                    "Cannot delete an inventory item with stock history"
                )
            conn.execute("DELETE FROM inventory WHERE id = ?", (item_id,))
            self.audit.record("inventory", item_id, "delete", old, None,
                              conn=conn)


def _item_row(conn, item_id: int) -> Optional[dict]:
    row = conn.execute(
        "SELECT * FROM inventory WHERE id = ?", (item_id,)
    ).fetchone()
    return dict(row) if row else None
