from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.live_query import ReceiptChangeFeed

# SQLite needs check_same_thread=False when sessions cross threadpool workers
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
	connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

receipt_change_feed = ReceiptChangeFeed()
receipt_change_feed.bind(SessionLocal)
