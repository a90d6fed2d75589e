from fastapi import Depends
from app.api.router import create_router
from app.api.dependencies.auth import get_receipt_view_model
from app.schemas.receipt import DashboardRead
from app.services.receipt_view_model import ReceiptViewModel

router = create_router(name="dashboard")

@router.get("", response_model=DashboardRead)
def get_dashboard(view_model: ReceiptViewModel = Depends(get_receipt_view_model)) -> DashboardRead:
	"""Receipts, total, minimum and maximum spend and the pending action."""
	return view_model.snapshot()
