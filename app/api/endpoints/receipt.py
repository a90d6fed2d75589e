from datetime import datetime
from typing import List, Optional

from fastapi import Depends, File, Form, HTTPException, UploadFile, status
from app.api.router import create_router
from app.api.dependencies.auth import get_receipt_view_model
from app.schemas.receipt import ActionResult, PendingState, ReceiptRead
from app.services.exceptions import ReceiptNotFoundError
from app.services.receipt_view_model import ReceiptViewModel

router = create_router(name="receipt")


def _read_image(file: Optional[UploadFile]) -> Optional[bytes]:
	if file is None or not file.filename:
		return None
	if not file.content_type or not file.content_type.startswith("image/"):
		raise HTTPException(status_code=400, detail="Only image files are accepted.")
	return file.file.read()


def _visible_receipt(view_model: ReceiptViewModel, receipt_id: str) -> ReceiptRead:
	receipt = view_model.find_receipt(receipt_id)
	if receipt is None:
		raise ReceiptNotFoundError(receipt_id=receipt_id, correlation_id=view_model.correlation_id)
	return receipt


def _raise_for_failure(result: ActionResult) -> ActionResult:
	"""Turn a failed action into an error response; input problems stay 4xx."""
	if not result.success:
		raise HTTPException(
			status_code=result.http_status or status.HTTP_500_INTERNAL_SERVER_ERROR,
			detail=result.message,
		)
	return result


@router.get("", response_model=List[ReceiptRead])
def list_receipts(view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> List[ReceiptRead]:
	"""Signed-in user's receipts, newest first."""
	return view_model.receipts


@router.post("", response_model=ActionResult, status_code=status.HTTP_201_CREATED)
def add_receipt(
	date: datetime = Form(...),
	location_name: str = Form(""),
	address: str = Form(""),
	items: List[str] = Form([]),
	amount: str = Form(...),
	file: UploadFile = File(...),
	view_model: ReceiptViewModel = Depends(get_receipt_view_model),
) -> ActionResult:
	"""Upload the receipt image and store the receipt."""
	image = _read_image(file)
	view_model.request_add()
	result = view_model.submit_add(date, location_name, address, items, amount, image)
	return _raise_for_failure(result)


# Pending-action routes come before "/{receipt_id}" so "pending" is not taken as an id

@router.get("/pending", response_model=PendingState)
def get_pending(view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> PendingState:
	return view_model.pending_state()


@router.post("/pending/add", response_model=PendingState)
def open_add(view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> PendingState:
	view_model.request_add()
	return view_model.pending_state()


@router.post("/pending/confirm-delete", response_model=ActionResult)
def confirm_delete(view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> ActionResult:
	"""Delete the receipt staged by ``/{receipt_id}/pending/delete``."""
	return _raise_for_failure(view_model.confirm_delete())


@router.delete("/pending", response_model=PendingState)
def cancel_pending(view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> PendingState:
	view_model.cancel_pending_action()
	return view_model.pending_state()


@router.post("/{receipt_id}/pending/edit", response_model=PendingState)
def open_edit(receipt_id: str, view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> PendingState:
	view_model.request_edit(_visible_receipt(view_model, receipt_id))
	return view_model.pending_state()


@router.post("/{receipt_id}/pending/delete", response_model=PendingState)
def open_delete(receipt_id: str, view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> PendingState:
	receipt = _visible_receipt(view_model, receipt_id)
	view_model.request_delete(receipt.id, receipt.image_bucket)
	return view_model.pending_state()


@router.get("/{receipt_id}", response_model=ReceiptRead)
def get_receipt(receipt_id: str, view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> ReceiptRead:
	return _visible_receipt(view_model, receipt_id)


@router.put("/{receipt_id}", response_model=ActionResult)
def edit_receipt(
	receipt_id: str,
	date: datetime = Form(...),
	location_name: str = Form(""),
	address: str = Form(""),
	items: List[str] = Form([]),
	amount: str = Form(...),
	file: Optional[UploadFile] = File(None),
	view_model: ReceiptViewModel = Depends(get_receipt_view_model),
) -> ActionResult:
	"""Overwrite the receipt; a new image replaces the old one at the same key."""
	image = _read_image(file)
	view_model.request_edit(_visible_receipt(view_model, receipt_id))
	result = view_model.submit_edit(date, location_name, address, items, amount, image)
	return _raise_for_failure(result)


@router.delete("/{receipt_id}", response_model=ActionResult)
def delete_receipt(receipt_id: str, view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> ActionResult:
	receipt = _visible_receipt(view_model, receipt_id)
	view_model.request_delete(receipt.id, receipt.image_bucket)
	return _raise_for_failure(view_model.confirm_delete())
