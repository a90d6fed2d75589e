from sqlalchemy import Column, String, Boolean
from app.db.base_class import Base, TimestampMixin, generate_id

class User(Base, TimestampMixin):
	__tablename__ = "users"

	id = Column(String(36), primary_key=True, index=True, default=generate_id)
	email = Column(String, unique=True, index=True, nullable=False)
	name = Column(String, nullable=False)
	hashed_password = Column(String, nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
