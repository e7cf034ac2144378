# pokerledger/db.py

from motor.motor_asyncio import AsyncIOMotorClient

from pokerledger.config import MONGODB_URI, MONGO_DB_NAME

# MongoDB
_mongo_client = AsyncIOMotorClient(MONGODB_URI)
db = _mongo_client[MONGO_DB_NAME]


def get_db():
    return db
