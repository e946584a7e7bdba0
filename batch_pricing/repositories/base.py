from typing import Generic, TypeVar, Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorCollection
from bson import ObjectId
from batch_pricing.models.base import MongoModel

T = TypeVar("T", bound=MongoModel)

def document_key(id: str) -> Any:
    """Documents imported from the old store keep their string ids; native ones use ObjectId."""
    if isinstance(id, str) and ObjectId.is_valid(id):
        return ObjectId(id)
    return id

class BaseRepository(Generic[T]):
    def __init__(self, collection: AsyncIOMotorCollection, model_cls: type[T]):
        self.collection = collection
        self.model_cls = model_cls

    async def get(self, id: str) -> Optional[T]:
        """Get a document by ID."""
        doc = await self.collection.find_one({"_id": document_key(id)})
        return self.model_cls.from_mongo(doc) if doc else None

    async def find_by_field(self, field: str, value: Any, limit: int = 5000) -> List[T]:
        """All documents where `field` equals `value` (dotted paths allowed)."""
        cursor = self.collection.find({field: value}).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self.model_cls.from_mongo(doc) for doc in docs]

    async def create(self, model: T) -> T:
        """Create a new document."""
        data = model.to_mongo()
        result = await self.collection.insert_one(data)
        model.id = str(result.inserted_id)
        return model

    async def update_fields(self, id: str, update_data: Dict[str, Any]) -> bool:
        """Partial update by ID. Returns False when no document has that ID."""
        result = await self.collection.update_one(
            {"_id": document_key(id)},
            {"$set": update_data}
        )
        return result.matched_count > 0

    async def update(self, id: str, update_data: Dict[str, Any]) -> Optional[T]:
        """Update a document by ID and return the stored version."""
        await self.update_fields(id, update_data)
        return await self.get(id)
