"""
Inventory Module Service (``procure_modules.inventory.service``).

Responsibility
--------------
Persists the moving-average cost ledger.  Pure cost math lives in
``procure_engines.inventory_cost``; this service loads the current
position of a stock item, hands it to the engine and stores the result.

Architecture position
---------------------
**Modules layer**.  ``post_invoice_lines`` and ``reverse_document`` run
inside the caller's transaction (invoice approval and reset).
``adjust_stock`` is a public operation and owns its transaction.

Invariants enforced
-------------------
* Rows are appended in ``entry_seq`` order; a reversal is a compensating
  row, never a delete.
* A stock master record exists for every stock name in the ledger.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from procure_engines.inventory_cost import (
    LedgerEntryDraft,
    LineCost,
    adjust_stock,
    post_purchase,
    reverse_purchase,
)
from procure_kernel.exceptions import InventoryPeriodNotFoundError
from procure_kernel.logging_config import get_logger
from procure_kernel.services.sequence_service import SequenceService
from procure_modules.inventory.orm import InventoryLedgerModel, StockItemModel

logger = get_logger("modules.inventory.service")

LEDGER_SEQUENCE = "inventory.ledger"


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


class InventoryService:
    """
    Monthly moving-average inventory ledger.

    Args:
        session: Shared session; the caller controls commit except for
            ``adjust_stock``.
        carry_forward: Open each month from the prior month's balances
            instead of from zero.
    """

    def __init__(self, session: Session, carry_forward: bool = False):
        self._session = session
        self._carry_forward = carry_forward
        self._sequence = SequenceService(session)

    # =========================================================================
    # Queries
    # =========================================================================

    def latest_row(self, stock_name: str, on_or_before: date) -> InventoryLedgerModel | None:
        return self._session.scalars(
            select(InventoryLedgerModel)
            .where(
                InventoryLedgerModel.stock_name == stock_name,
                InventoryLedgerModel.inventory_date <= on_or_before,
            )
            .order_by(
                InventoryLedgerModel.inventory_date.desc(),
                InventoryLedgerModel.entry_seq.desc(),
            )
            .limit(1)
        ).first()

    def ledger_for(self, stock_name: str) -> list[InventoryLedgerModel]:
        """All rows of a stock item in posting order."""
        return list(self._session.scalars(
            select(InventoryLedgerModel)
            .where(InventoryLedgerModel.stock_name == stock_name)
            .order_by(InventoryLedgerModel.entry_seq)
        ))

    def stock_item(self, stock_name: str) -> StockItemModel | None:
        return self._session.scalars(
            select(StockItemModel).where(StockItemModel.stock_name == stock_name)
        ).one_or_none()

    # =========================================================================
    # Posting (caller-owned transaction)
    # =========================================================================

    def _ensure_stock_item(self, stock_name: str, account_code: str | None, actor_id: UUID) -> None:
        if self.stock_item(stock_name) is not None:
            return
        self._session.add(StockItemModel(
            stock_name=stock_name,
            account_code=account_code,
            created_by_id=actor_id,
        ))
        self._session.flush()
        logger.info("stock_item_created", extra={"stock_name": stock_name})

    def _append(
        self,
        draft: LedgerEntryDraft,
        actor_id: UUID,
        source_document_id: UUID | None,
        reversal_of_id: UUID | None = None,
    ) -> InventoryLedgerModel:
        row = InventoryLedgerModel.from_draft(
            draft,
            entry_seq=self._sequence.next_value(LEDGER_SEQUENCE),
            created_by_id=actor_id,
            source_document_id=source_document_id,
            reversal_of_id=reversal_of_id,
        )
        self._session.add(row)
        self._session.flush()
        return row

    def post_invoice_lines(
        self,
        source_document_id: UUID,
        costs: Sequence[LineCost],
        inventory_date: date,
        actor_id: UUID,
    ) -> list[InventoryLedgerModel]:
        """One ledger row per invoice line, in line order."""
        rows = []
        for cost in costs:
            stock_name = cost.line.stock_name
            previous = self.latest_row(stock_name, inventory_date)
            draft = post_purchase(
                cost=cost,
                inventory_date=inventory_date,
                previous=previous.position() if previous is not None else None,
                carry_forward=self._carry_forward,
            )
            rows.append(self._append(draft, actor_id, source_document_id))
            self._ensure_stock_item(stock_name, cost.line.account_code, actor_id)
        logger.info("inventory_invoice_posted", extra={
            "source_document_id": str(source_document_id),
            "row_count": len(rows),
        })
        return rows

    def reverse_document(self, source_document_id: UUID, actor_id: UUID) -> list[InventoryLedgerModel]:
        """Append compensating rows for every unreversed row of a document."""
        reversed_ids = select(InventoryLedgerModel.reversal_of_id).where(
            InventoryLedgerModel.reversal_of_id.is_not(None),
        )
        originals = list(self._session.scalars(
            select(InventoryLedgerModel)
            .where(
                InventoryLedgerModel.source_document_id == source_document_id,
                InventoryLedgerModel.reversal_of_id.is_(None),
                InventoryLedgerModel.id.not_in(reversed_ids),
            )
            .order_by(InventoryLedgerModel.entry_seq)
        ))

        rows = []
        for original in originals:
            previous = self.latest_row(original.stock_name, original.inventory_date)
            draft = reverse_purchase(
                original=original.to_draft(),
                inventory_date=original.inventory_date,
                previous=previous.position() if previous is not None else None,
                carry_forward=self._carry_forward,
            )
            rows.append(self._append(
                draft, actor_id, source_document_id, reversal_of_id=original.id,
            ))
        logger.info("inventory_document_reversed", extra={
            "source_document_id": str(source_document_id),
            "row_count": len(rows),
        })
        return rows

    # =========================================================================
    # Adjustment
    # =========================================================================

    def adjust_stock(
        self,
        stock_name: str,
        year: int,
        month: int,
        nett_purchase_delta: Decimal,
        actor_id: UUID,
    ) -> InventoryLedgerModel:
        """
        Correct the stock value of the latest row in a month.

        Earlier rows are not rewritten; the delta accumulates in
        ``total_nett`` on the patched row.

        Raises:
            InventoryPeriodNotFoundError: No row for the item in the month.
        """
        try:
            start, end = _month_bounds(year, month)
            latest = self._session.scalars(
                select(InventoryLedgerModel)
                .where(
                    InventoryLedgerModel.stock_name == stock_name,
                    InventoryLedgerModel.inventory_date >= start,
                    InventoryLedgerModel.inventory_date < end,
                )
                .order_by(
                    InventoryLedgerModel.inventory_date.desc(),
                    InventoryLedgerModel.entry_seq.desc(),
                )
                .limit(1)
                .with_for_update()
            ).first()
            if latest is None:
                raise InventoryPeriodNotFoundError(stock_name, f"{year:04d}-{month:02d}")

            adjustment = adjust_stock(latest.position(), nett_purchase_delta)
            latest.total_stock = adjustment.total_stock
            latest.avg_per_unit = adjustment.avg_per_unit
            latest.total_nett = (latest.total_nett or Decimal("0")) + adjustment.nett_delta
            latest.updated_by_id = actor_id
            self._session.flush()
            self._session.commit()

            logger.info("inventory_stock_adjusted", extra={
                "stock_name": stock_name,
                "period": f"{year:04d}-{month:02d}",
                "nett_delta": str(nett_purchase_delta),
                "total_stock": str(adjustment.total_stock),
                "avg_per_unit": str(adjustment.avg_per_unit),
            })
            return latest
        except Exception:
            self._session.rollback()
            raise
