"""Receipt view model: the dashboard state of one signed-in session.

The view model keeps the session's receipt list in sync with the repository
live query and derives the total, minimum and maximum spend from it. It
sequences add, edit and delete, each of which writes through the repository
and the image store and then waits for the live query to push the new list.
The list is never modified directly.

At most one action is pending at a time:

    NONE -> ADD     request_add()
    NONE -> EDIT    request_edit(receipt)
    NONE -> DELETE  request_delete(receipt_id, image_bucket)
    ADD/EDIT/DELETE -> NONE   on cancel, success or failure

Every add/edit/delete resolves to an ``ActionResult`` with one of six fixed
messages; failures are logged and reported, never raised.
"""

import threading
from datetime import datetime
from decimal import Decimal
from http import HTTPStatus
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from app.repositories.receipt import ReceiptRepository
from app.schemas.auth import Identity
from app.schemas.receipt import (
    ActionResult,
    DashboardRead,
    PendingAction,
    PendingState,
    ReceiptForm,
    ReceiptRead,
)
from app.services.base import BaseService
from app.services.exceptions import (
    InvalidActionError,
    ServiceError,
    SessionClosedError,
    ValidationError,
    get_http_status_for_error,
)
from app.services.image_services import ImageStore
from app.services.session_services import SessionProvider

ADD_SUCCESS = "Receipt was successfully added!"
ADD_ERROR = "Receipt was not successfully added!"
EDIT_SUCCESS = "Receipt was successfully updated!"
EDIT_ERROR = "Receipt was not successfully updated!"
DELETE_SUCCESS = "Receipt successfully deleted!"
DELETE_ERROR = "Receipt not successfully deleted!"

SUCCESS_MESSAGES = {
    PendingAction.ADD: ADD_SUCCESS,
    PendingAction.EDIT: EDIT_SUCCESS,
    PendingAction.DELETE: DELETE_SUCCESS,
}

ERROR_MESSAGES = {
    PendingAction.ADD: ADD_ERROR,
    PendingAction.EDIT: EDIT_ERROR,
    PendingAction.DELETE: DELETE_ERROR,
}


def _describe_failure(error: Exception) -> Tuple[str, HTTPStatus]:
    """Error code and HTTP status reported for a failed action."""
    if isinstance(error, PydanticValidationError):
        # Rejected form fields, an unparseable amount included
        return "VALIDATION_ERROR", HTTPStatus.UNPROCESSABLE_ENTITY
    if isinstance(error, ServiceError):
        return error.error_code, get_http_status_for_error(error)
    return "INTERNAL_ERROR", HTTPStatus.INTERNAL_SERVER_ERROR


class ReceiptViewModel(BaseService):
    """Receipt list, aggregates and pending action of one session.

    The view model owns ``receipt_repo.db`` and closes it on ``dispose``.
    """

    def __init__(
        self,
        session: SessionProvider,
        receipt_repo: ReceiptRepository,
        image_store: ImageStore,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(correlation_id)
        self.session = session
        self.receipt_repo = receipt_repo
        self.image_store = image_store

        self.receipts: List[ReceiptRead] = []
        self.total_spent = Decimal("0.00")
        self.pending_action = PendingAction.NONE
        self.last_result: Optional[ActionResult] = None
        self.is_loading = True

        self._edit_target: Optional[ReceiptRead] = None
        self._delete_target: Optional[Tuple[str, str]] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.RLock()

        self._detach_session = session.subscribe(self._on_identity_change)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_identity_change(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self.stop()
        else:
            self.start()

    def _require_uid(self) -> str:
        identity = self.session.current_identity()
        if identity is None:
            raise SessionClosedError(session_id=self.session.session_id, correlation_id=self.correlation_id)
        return identity.id

    def start(self) -> None:
        """Subscribe to the signed-in user's receipts and load the total."""
        with self._lock:
            if self._unsubscribe is not None:
                return
            uid = self._require_uid()
            self.is_loading = True
            self._unsubscribe = self.receipt_repo.subscribe(uid, self._on_receipts, self._on_loading_change)
            self._refresh_total(uid)
            self.log_operation("view_model_started", uid=uid)

    def stop(self) -> None:
        """Stop live-query deliveries. In-flight writes are not cancelled."""
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            self.log_operation("view_model_stopped")

    def dispose(self) -> None:
        """Stop, detach from the session and release the database session."""
        self.stop()
        self._detach_session()
        self.receipt_repo.db.close()

    def _on_receipts(self, receipts: List[ReceiptRead]) -> None:
        # Sole writer of the displayed list; each delivery replaces it whole
        self.receipts = list(receipts)

    def _on_loading_change(self, is_loading: bool) -> None:
        self.is_loading = is_loading

    def _refresh_total(self, uid: str) -> None:
        self.total_spent = self.receipt_repo.sum_spent(uid)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def min_spent(self) -> Optional[Decimal]:
        """Smallest amount on display; None when the list is empty."""
        receipts = self.receipts
        if not receipts:
            return None
        return min(receipt.amount for receipt in receipts)

    @property
    def max_spent(self) -> Optional[Decimal]:
        """Largest amount on display; None when the list is empty."""
        receipts = self.receipts
        if not receipts:
            return None
        return max(receipt.amount for receipt in receipts)

    def find_receipt(self, receipt_id: str) -> Optional[ReceiptRead]:
        for receipt in self.receipts:
            if receipt.id == receipt_id:
                return receipt
        return None

    def pending_state(self) -> PendingState:
        with self._lock:
            return PendingState(
                pending_action=self.pending_action,
                edit_target=self._edit_target,
                delete_target_id=self._delete_target[0] if self._delete_target else None,
            )

    def snapshot(self) -> DashboardRead:
        receipts = self.receipts
        return DashboardRead(
            receipts=receipts,
            total_spent=self.total_spent,
            min_spent=min((r.amount for r in receipts), default=None),
            max_spent=max((r.amount for r in receipts), default=None),
            pending_action=self.pending_action,
            last_result=self.last_result,
            is_loading=self.is_loading,
        )

    # ------------------------------------------------------------------
    # Pending action transitions
    # ------------------------------------------------------------------

    def _enter(self, action: PendingAction) -> None:
        if self.pending_action not in (PendingAction.NONE, action):
            raise InvalidActionError(
                requested=action.value,
                pending=self.pending_action.value,
                correlation_id=self.correlation_id,
            )
        self.pending_action = action

    def request_add(self) -> None:
        with self._lock:
            self._enter(PendingAction.ADD)
            self._edit_target = None

    def request_edit(self, receipt: ReceiptRead) -> None:
        with self._lock:
            self._enter(PendingAction.EDIT)
            self._edit_target = receipt

    def request_delete(self, receipt_id: str, image_bucket: str) -> None:
        with self._lock:
            self._enter(PendingAction.DELETE)
            self._delete_target = (receipt_id, image_bucket)

    def cancel_pending_action(self) -> None:
        with self._lock:
            self.pending_action = PendingAction.NONE
            self._edit_target = None
            self._delete_target = None

    def _require_pending(self, action: PendingAction) -> None:
        if self.pending_action != action:
            raise InvalidActionError(
                requested=action.value,
                pending=self.pending_action.value,
                correlation_id=self.correlation_id,
            )

    def _report(self, action: PendingAction, error: Optional[Exception] = None) -> ActionResult:
        if error is None:
            result = ActionResult(action=action, success=True, message=SUCCESS_MESSAGES[action])
        else:
            error_code, http_status = _describe_failure(error)
            result = ActionResult(
                action=action,
                success=False,
                message=ERROR_MESSAGES[action],
                error_code=error_code,
                http_status=int(http_status),
            )
        self.last_result = result
        self.pending_action = PendingAction.NONE
        self.log_operation(
            "action_result",
            action=action.value,
            success=result.success,
            error_code=result.error_code,
        )
        return result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit_add(
        self,
        date: datetime,
        location_name: str,
        address: str,
        items: List[str],
        amount,
        image: Optional[bytes],
    ) -> ActionResult:
        """Upload the image, insert the receipt and refresh the total."""
        with self._lock:
            self._require_pending(PendingAction.ADD)
            failure = None
            bucket_ref = None
            try:
                uid = self._require_uid()
                form = ReceiptForm(
                    date=date,
                    location_name=location_name,
                    address=address,
                    items=items,
                    amount=amount,
                )
                if not image:
                    raise ValidationError(
                        field="image",
                        message="A receipt image is required",
                        correlation_id=self.correlation_id,
                    )
                bucket_ref = self.image_store.upload(image, uid)
                self.run_in_transaction(
                    self.receipt_repo.db,
                    lambda: self.receipt_repo.add(
                        uid,
                        form.date,
                        form.location_name,
                        form.address,
                        form.items,
                        form.amount,
                        bucket_ref,
                    ),
                )
                bucket_ref = None
                self._refresh_total(uid)
            except Exception as e:
                failure = e
                self.log_operation("submit_add_failed", error_type=type(e).__name__, error_message=str(e))
                if bucket_ref is not None:
                    self._discard_image(bucket_ref)
            self._edit_target = None
            return self._report(PendingAction.ADD, failure)

    def submit_edit(
        self,
        date: datetime,
        location_name: str,
        address: str,
        items: List[str],
        amount,
        image: Optional[bytes] = None,
    ) -> ActionResult:
        """Replace the image if one is given, then overwrite the receipt."""
        with self._lock:
            self._require_pending(PendingAction.EDIT)
            target = self._edit_target
            failure = None
            try:
                uid = self._require_uid()
                if target is None:
                    raise ValidationError(
                        field="receipt",
                        message="No receipt is staged for editing",
                        correlation_id=self.correlation_id,
                    )
                form = ReceiptForm(
                    date=date,
                    location_name=location_name,
                    address=address,
                    items=items,
                    amount=amount,
                )
                if image:
                    self.image_store.replace(image, target.image_bucket)
                self.run_in_transaction(
                    self.receipt_repo.db,
                    lambda: self.receipt_repo.update_receipt(
                        target.id,
                        uid,
                        form.date,
                        form.location_name,
                        form.address,
                        form.items,
                        form.amount,
                        target.image_bucket,
                    ),
                )
                self._refresh_total(uid)
            except Exception as e:
                failure = e
                self.log_operation(
                    "submit_edit_failed",
                    receipt_id=target.id if target else None,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
            self._edit_target = None
            return self._report(PendingAction.EDIT, failure)

    def confirm_delete(self) -> ActionResult:
        """Delete the staged receipt, then its image, then refresh the total.

        A failure in either delete aborts the sequence; the total is then left
        as it was until the next successful action.
        """
        with self._lock:
            self._require_pending(PendingAction.DELETE)
            target = self._delete_target
            failure = None
            try:
                uid = self._require_uid()
                if target is None:
                    raise ValidationError(
                        field="receipt",
                        message="No receipt is staged for deletion",
                        correlation_id=self.correlation_id,
                    )
                receipt_id, image_bucket = target
                self.run_in_transaction(
                    self.receipt_repo.db,
                    lambda: self.receipt_repo.delete_receipt(receipt_id),
                )
                self.image_store.delete(image_bucket)
                self._refresh_total(uid)
            except Exception as e:
                failure = e
                self.log_operation(
                    "confirm_delete_failed",
                    receipt_id=target[0] if target else None,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
            self._delete_target = None
            return self._report(PendingAction.DELETE, failure)

    def _discard_image(self, bucket_ref: str) -> None:
        """Remove an image whose receipt was never written."""
        try:
            self.image_store.delete(bucket_ref)
        except Exception as e:
            self.logger.warning(
                "Orphaned receipt image could not be removed",
                extra={
                    "correlation_id": self.correlation_id,
                    "service": self.__class__.__name__,
                    "bucket_ref": bucket_ref,
                    "error": str(e),
                },
            )
