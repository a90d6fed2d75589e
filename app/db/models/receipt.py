from sqlalchemy import Column, DateTime, Index, JSON, Numeric, String
from app.db.base_class import Base, TimestampMixin, generate_id

class Receipt(Base, TimestampMixin):
	__tablename__ = "receipts"

	id = Column(String(36), primary_key=True, index=True, default=generate_id)
	uid = Column(String(36), index=True, nullable=False)
	date = Column(DateTime(timezone=True), nullable=False)
	location_name = Column("locationName", String, nullable=False, default="")
	address = Column(String, nullable=False, default="")
	items = Column(JSON, nullable=False, default=list)
	amount = Column(Numeric(12, 2), nullable=False)
	image_bucket = Column("imageBucket", String, nullable=False)

	__table_args__ = (
		# Serves the per-user live query ordered by date
		Index("ix_receipts_uid_date", "uid", "date"),
	)
