from batch_pricing.models.base import MongoModel, StoreValue, Number, parse_number
from batch_pricing.models.purchase_order import PurchaseOrder, POItem, AdditionalCostItem, vat_percent
from batch_pricing.models.inventory_batch import InventoryBatch, PurchaseOrderDetails, SourceDetails, BatchLinkage, LinkKind, resolve_linkage
from batch_pricing.models.propagation import PropagationTrigger, PropagationResult, PriceChange, BatchPriceUpdate, BatchWriteResult, FailedWrite, SkippedWrite, MatchStrategy
from batch_pricing.models.system_event import SystemEvent
