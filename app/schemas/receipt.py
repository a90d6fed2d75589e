from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum

from app.services.exceptions import AmountParseError

TWO_PLACES = Decimal("0.01")


def parse_amount(raw) -> Decimal:
	"""Parse decimal text (or a number) into a two-place Decimal.

	Raises:
		AmountParseError: If the value is not a finite decimal number
	"""
	if isinstance(raw, Decimal):
		value = raw
	else:
		text = str(raw).strip().replace(",", ".") if raw is not None else ""
		try:
			value = Decimal(text)
		except (InvalidOperation, ValueError):
			raise AmountParseError(raw)
	if not value.is_finite():
		raise AmountParseError(raw)
	try:
		return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
	except InvalidOperation:
		raise AmountParseError(raw)


def as_utc(value: datetime) -> datetime:
	"""Attach UTC to naive timestamps and convert aware ones to UTC."""
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


class PendingAction(str, Enum):
	NONE = "none"
	ADD = "add"
	EDIT = "edit"
	DELETE = "delete"


class ReceiptForm(BaseModel):
	"""Validated add/edit form fields; amount is parsed once here."""
	date: datetime
	location_name: str = Field(default="", max_length=255)
	address: str = Field(default="", max_length=512)
	items: List[str] = Field(default_factory=list)
	amount: Decimal

	@validator('date')
	def normalize_date(cls, v):
		return as_utc(v)

	@validator('location_name', 'address')
	def strip_text(cls, v):
		return v.strip()

	@validator('items')
	def drop_blank_items(cls, v):
		return [item.strip() for item in v if item and item.strip()]

	@validator('amount', pre=True)
	def validate_amount(cls, v):
		try:
			return parse_amount(v)
		except AmountParseError as e:
			raise ValueError(e.user_message)


class ReceiptRead(BaseModel):
	id: str
	uid: str
	date: datetime
	location_name: str
	address: str
	items: List[str]
	amount: Decimal
	image_bucket: str
	image_url: Optional[str] = None

	class Config:
		from_attributes = True


class ActionResult(BaseModel):
	"""Outcome of one add/edit/delete operation.

	Failures carry the error code and HTTP status of their cause, so input
	problems are told apart from storage or database failures.
	"""
	action: PendingAction
	success: bool
	message: str
	error_code: Optional[str] = None
	http_status: Optional[int] = None


class PendingState(BaseModel):
	pending_action: PendingAction
	edit_target: Optional[ReceiptRead] = None
	delete_target_id: Optional[str] = None


class DashboardRead(BaseModel):
	receipts: List[ReceiptRead]
	total_spent: Decimal
	min_spent: Optional[Decimal] = None
	max_spent: Optional[Decimal] = None
	pending_action: PendingAction
	last_result: Optional[ActionResult] = None
	is_loading: bool
