# Import all the models, so that Base has them before being
# imported by Alembic or used by create_all
from app.db.base_class import Base  # noqa: F401
from app.db.models.user import User  # noqa: F401
from app.db.models.receipt import Receipt  # noqa: F401
