import logging
from motor.motor_asyncio import AsyncIOMotorClient
from batch_pricing.config import settings
from batch_pricing.repositories.purchase_order import PurchaseOrderRepository
from batch_pricing.repositories.inventory_batch import InventoryBatchRepository
from batch_pricing.repositories.system_event import SystemEventRepository
from batch_pricing.models.purchase_order import PurchaseOrder
from batch_pricing.models.inventory_batch import InventoryBatch
from batch_pricing.models.system_event import SystemEvent

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None

    # Repositories
    purchase_orders: PurchaseOrderRepository = None
    batches: InventoryBatchRepository = None
    events: SystemEventRepository = None

    def connect(self):
        """Initialize database connection and repositories."""
        self.client = AsyncIOMotorClient(settings.MONGODB_URL)
        db = self.client[settings.DB_NAME]

        # Initialize repositories with their respective collections and models
        self.purchase_orders = PurchaseOrderRepository(db[settings.PURCHASE_ORDERS_COLLECTION], PurchaseOrder)
        self.batches = InventoryBatchRepository(db[settings.INVENTORY_BATCHES_COLLECTION], InventoryBatch)
        self.events = SystemEventRepository(db[settings.SYSTEM_EVENTS_COLLECTION], SystemEvent)

        logger.info("Connected to MongoDB")

    def close(self):
        """Close database connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

db = Database()
