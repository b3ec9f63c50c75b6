import logging

from sqlmodel import Session

from .models import BranchTable, TableStatus, utcnow

logger = logging.getLogger(__name__)


class TableStatusSync:
    """Keeps a table's availability in step with the orders seated at it.

    Writes are flushed into the caller's transaction and committed with it.
    A table that no longer exists is logged and skipped.
    """

    def __init__(self, session: Session):
        self.session = session

    def occupy(self, table_id: int | None) -> None:
        self._set(table_id, TableStatus.OCCUPIED)

    def release(self, table_id: int | None) -> None:
        self._set(table_id, TableStatus.AVAILABLE)

    def reoccupy(self, table_id: int | None) -> None:
        """Occupy the table again unless it has been taken or reserved meanwhile."""
        if table_id is None:
            return
        table = self.session.get(BranchTable, table_id)
        if table is not None and table.status != TableStatus.AVAILABLE.value:
            logger.info("Table %s is %s, leaving it as is", table_id, table.status)
            return
        self._set(table_id, TableStatus.OCCUPIED)

    def _set(self, table_id: int | None, table_status: TableStatus) -> None:
        if table_id is None:
            return
        table = self.session.get(BranchTable, table_id)
        if table is None:
            logger.warning("Table %s not found, cannot mark it %s", table_id, table_status.value)
            return
        if table.status == table_status.value:
            return
        table.status = table_status.value
        table.updated_at = utcnow()
        self.session.add(table)
        logger.info("Table %s marked %s", table_id, table_status.value)
