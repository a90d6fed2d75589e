"""Receipt repository for receipt persistence and the per-user live query."""

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.repositories.base import BaseRepository
from app.db.live_query import ReceiptChangeFeed
from app.db.models.receipt import Receipt
from app.schemas.receipt import ReceiptRead, as_utc, parse_amount
from app.services.exceptions import (
    ImageError,
    ReceiptNotFoundError,
    ReceiptWriteError,
)
from app.services.image_services import ImageStore

OnUpdate = Callable[[List[ReceiptRead]], None]
OnLoadingChange = Callable[[bool], None]


class ReceiptRepository(BaseRepository[Receipt]):
    """Repository for Receipt entity operations.

    Every read is scoped by ``uid``. ``subscribe`` turns the ordered per-user
    query into a live query fed by ``change_feed``.
    """

    def __init__(
        self,
        db: Session,
        image_store: ImageStore,
        change_feed: ReceiptChangeFeed,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(db, Receipt, correlation_id)
        self.image_store = image_store
        self.change_feed = change_feed

    def add(
        self,
        uid: str,
        date: datetime,
        location_name: str,
        address: str,
        items: List[str],
        amount,
        image_bucket: str,
    ) -> Receipt:
        """Insert a new receipt document.

        Raises:
            ReceiptWriteError: If the database rejects the insert
            AmountParseError: If ``amount`` is not decimal
        """
        data = {
            "uid": uid,
            "date": as_utc(date),
            "location_name": location_name,
            "address": address,
            "items": list(items),
            "amount": parse_amount(amount),
            "image_bucket": image_bucket,
        }
        try:
            return self.create(data)
        except SQLAlchemyError as e:
            raise ReceiptWriteError(operation="add", reason=str(e), correlation_id=self.correlation_id)

    def update_receipt(
        self,
        id: str,
        uid: str,
        date: datetime,
        location_name: str,
        address: str,
        items: List[str],
        amount,
        image_bucket: str,
    ) -> Receipt:
        """Overwrite every field of an existing receipt.

        Raises:
            ReceiptNotFoundError: If no receipt has ``id``
            ReceiptWriteError: If the database rejects the write
        """
        data = {
            "uid": uid,
            "date": as_utc(date),
            "location_name": location_name,
            "address": address,
            "items": list(items),
            "amount": parse_amount(amount),
            "image_bucket": image_bucket,
        }
        try:
            receipt = self.update(id, data)
        except SQLAlchemyError as e:
            raise ReceiptWriteError(operation="update", reason=str(e), receipt_id=id, correlation_id=self.correlation_id)
        if receipt is None:
            raise ReceiptNotFoundError(receipt_id=id, user_id=uid, correlation_id=self.correlation_id)
        return receipt

    def delete_receipt(self, id: str) -> None:
        """Remove a receipt document. The image is left to the caller.

        Raises:
            ReceiptNotFoundError: If no receipt has ``id``
            ReceiptWriteError: If the database rejects the delete
        """
        try:
            deleted = self.delete(id)
        except SQLAlchemyError as e:
            raise ReceiptWriteError(operation="delete", reason=str(e), receipt_id=id, correlation_id=self.correlation_id)
        if not deleted:
            raise ReceiptNotFoundError(receipt_id=id, correlation_id=self.correlation_id)

    def get_by_id_and_user(self, receipt_id: str, uid: str) -> Optional[Receipt]:
        result = self.db.query(self.model).filter(
            self.model.id == receipt_id,
            self.model.uid == uid,
        ).first()
        self._log_operation("get_by_id_and_user", receipt_id=receipt_id, uid=uid, found=result is not None)
        return result

    def sum_spent(self, uid: str) -> Decimal:
        """Total of all amounts owned by ``uid``; ``0.00`` when there are none.

        Read in a short-lived session so no connection stays checked out
        between writes.
        """
        with Session(bind=self.db.get_bind()) as read_db:
            total = read_db.query(func.coalesce(func.sum(self.model.amount), 0)).filter(
                self.model.uid == uid
            ).scalar()
        result = parse_amount(Decimal(str(total)))
        self._log_operation("sum_spent", uid=uid, total=str(result))
        return result

    def list_for_user(self, uid: str, db: Optional[Session] = None) -> List[Receipt]:
        """Receipts owned by ``uid``, newest ``date`` first; ties keep a fixed order."""
        session = db or self.db
        return session.query(self.model).filter(
            self.model.uid == uid
        ).order_by(self.model.date.desc(), self.model.id).all()

    def fetch_snapshot(self, uid: str) -> List[ReceiptRead]:
        """Read the complete ordered result set with resolved image URLs.

        A fresh session is used so the snapshot reflects everything committed
        so far, independent of the state of ``self.db``.
        """
        with Session(bind=self.db.get_bind()) as snapshot_db:
            rows = self.list_for_user(uid, db=snapshot_db)
            receipts = [self._to_read(row) for row in rows]
        self._log_operation("fetch_snapshot", uid=uid, count=len(receipts))
        return receipts

    def _to_read(self, row: Receipt) -> ReceiptRead:
        try:
            image_url = self.image_store.resolve_url(row.image_bucket)
        except ImageError as e:
            # Dangling image reference; keep the receipt visible without a link
            self.logger.warning(
                "Receipt image could not be resolved",
                extra={
                    "correlation_id": self.correlation_id,
                    "repository": self.__class__.__name__,
                    "receipt_id": row.id,
                    "bucket_ref": row.image_bucket,
                    "error": str(e),
                },
            )
            image_url = None
        return ReceiptRead(
            id=row.id,
            uid=row.uid,
            date=as_utc(row.date),
            location_name=row.location_name,
            address=row.address,
            items=list(row.items or []),
            amount=parse_amount(row.amount),
            image_bucket=row.image_bucket,
            image_url=image_url,
        )

    def subscribe(self, uid: str, on_update: OnUpdate, on_loading_change: OnLoadingChange) -> Callable[[], None]:
        """Start a live query over ``uid``'s receipts ordered by date descending.

        ``on_update`` receives the full list now and after every committed
        change. ``on_loading_change(False)`` is called once, after the first
        delivery.

        Returns:
            Disposer that stops deliveries. Call it once on teardown.
        """
        loaded = False

        def _deliver() -> None:
            nonlocal loaded
            on_update(self.fetch_snapshot(uid))
            if not loaded:
                loaded = True
                on_loading_change(False)

        remove = self.change_feed.listen(uid, _deliver)
        try:
            _deliver()
        except Exception:
            remove()
            raise

        disposed = False

        def _unsubscribe() -> None:
            nonlocal disposed
            if disposed:
                self.logger.warning(
                    "Receipt subscription disposed twice",
                    extra={"correlation_id": self.correlation_id, "uid": uid},
                )
                return
            disposed = True
            remove()
            self._log_operation("unsubscribe", uid=uid)

        self._log_operation("subscribe", uid=uid)
        return _unsubscribe
