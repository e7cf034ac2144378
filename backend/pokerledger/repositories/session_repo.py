from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, List
from datetime import datetime

# _id は返さない
_NO_ID = {"_id": 0}


class SessionRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.game_sessions

    async def exists(self, session_id: str) -> bool:
        doc = await self.collection.find_one({"id": session_id}, {"_id": 1})
        return doc is not None

    async def create(self, data: dict) -> str:
        data["created_at"] = datetime.utcnow()
        data["updated_at"] = data["created_at"]
        await self.collection.insert_one(data)
        return data["id"]

    async def get_by_id(self, session_id: str) -> Optional[dict]:
        return await self.collection.find_one({"id": session_id}, _NO_ID)

    async def list_owned(self, owner_id: str) -> List[dict]:
        cursor = self.collection.find({"owner_id": owner_id}, _NO_ID).sort("start_time", -1)
        return await cursor.to_list(length=1000)

    async def list_by_ids(self, session_ids: List[str]) -> List[dict]:
        if not session_ids:
            return []
        cursor = self.collection.find({"id": {"$in": session_ids}}, _NO_ID).sort("start_time", -1)
        return await cursor.to_list(length=1000)

    async def update(self, session_id: str, updates: dict) -> bool:
        updates["updated_at"] = datetime.utcnow()
        result = await self.collection.update_one({"id": session_id}, {"$set": updates})
        return result.matched_count == 1

    async def delete(self, session_id: str) -> bool:
        result = await self.collection.delete_one({"id": session_id})
        return result.deleted_count == 1

    async def add_invited_user(self, session_id: str, user_id: str):
        await self.collection.update_one({"id": session_id}, {"$addToSet": {"invited_users": user_id}})

    async def remove_invited_user(self, session_id: str, user_id: str):
        await self.collection.update_one({"id": session_id}, {"$pull": {"invited_users": user_id}})


class InvitationRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.game_invitations

    async def create(self, data: dict) -> str:
        data["created_at"] = datetime.utcnow()
        data["status"] = "pending"
        data["responded_at"] = None
        await self.collection.insert_one(data)
        return data["invitation_id"]

    async def get_by_id(self, invitation_id: str) -> Optional[dict]:
        return await self.collection.find_one({"invitation_id": invitation_id}, _NO_ID)

    async def find_open(self, session_id: str, invitee_id: str) -> Optional[dict]:
        return await self.collection.find_one(
            {"session_id": session_id, "invitee_id": invitee_id, "status": {"$in": ["pending", "accepted"]}},
            _NO_ID,
        )

    async def list_pending_for(self, invitee_id: str) -> List[dict]:
        cursor = self.collection.find({"invitee_id": invitee_id, "status": "pending"}, _NO_ID)
        return await cursor.to_list(length=100)

    async def accepted_session_ids(self, invitee_id: str) -> List[str]:
        cursor = self.collection.find({"invitee_id": invitee_id, "status": "accepted"}, {"session_id": 1})
        return [doc["session_id"] for doc in await cursor.to_list(length=1000)]

    async def respond(self, invitation_id: str, status: str) -> bool:
        result = await self.collection.update_one(
            {"invitation_id": invitation_id, "status": "pending"},
            {"$set": {"status": status, "responded_at": datetime.utcnow()}},
        )
        return result.modified_count == 1

    async def revoke(self, session_id: str, invitee_id: str) -> bool:
        result = await self.collection.delete_many({"session_id": session_id, "invitee_id": invitee_id})
        return result.deleted_count > 0

    async def delete_for_session(self, session_id: str):
        await self.collection.delete_many({"session_id": session_id})


class GameResultRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.game_results

    async def upsert(self, data: dict):
        await self.collection.update_one(
            {"session_id": data["session_id"]},
            {"$set": data},
            upsert=True,
        )

    async def get_by_session(self, session_id: str) -> Optional[dict]:
        return await self.collection.find_one({"session_id": session_id}, _NO_ID)
