"""Document-store (MongoDB) node.

Config:
    operation: find | findOne | insertOne | insertMany | updateOne |
        updateMany | deleteOne | deleteMany | count | aggregate (default: find)
    collection: Collection name (required, templated)
    query: Filter document (templated)
    data: Document(s) to insert, or fields to ``$set`` on update (templated)
    pipeline: Aggregation pipeline (templated)
    options.limit: Max documents returned by ``find`` (default: 100)
"""

from typing import Any

import structlog

from core.exceptions import NodeConfigurationError
from core.utils import to_jsonable, utcnow
from nodes.base_node import BaseNode, NodeKind
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode

logger = structlog.get_logger(__name__)

OPERATIONS = (
    "find",
    "findOne",
    "insertOne",
    "insertMany",
    "updateOne",
    "updateMany",
    "deleteOne",
    "deleteMany",
    "count",
    "aggregate",
)


class MongoDBNode(BaseNode):
    """Run a single operation against a document collection."""

    kind = NodeKind.MONGODB
    display_name = "MongoDB"
    description = "Query or modify documents in a MongoDB collection"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        operation = config.get("operation") or "find"
        collection_name = self.resolve(config.get("collection") or "", context)

        if not collection_name:
            raise NodeConfigurationError("MongoDB node requires a collection name")
        if operation not in OPERATIONS:
            raise NodeConfigurationError(f"Unknown MongoDB operation: {operation}")

        store = self.services.document_store
        if store is None:
            raise NodeConfigurationError("No document store configured (set MONGO_URL)")

        coll = store.collection(collection_name)
        query = self.resolve(config.get("query") or {}, context)
        data = self.resolve(config.get("data") or {}, context)

        logger.info(
            "Document operation",
            operation=operation,
            collection=collection_name,
            node_id=node.id,
        )

        if operation == "find":
            options = config.get("options") or {}
            limit = int(options.get("limit") or self.settings.FIND_DEFAULT_LIMIT)
            results = await coll.find(query).limit(limit).to_list(length=limit)
            return {"operation": "find", "count": len(results), "results": to_jsonable(results)}

        if operation == "findOne":
            doc = await coll.find_one(query)
            return {"operation": "findOne", "found": doc is not None, "document": to_jsonable(doc)}

        if operation == "insertOne":
            result = await coll.insert_one({**data, "createdAt": utcnow()})
            return {
                "operation": "insertOne",
                "insertedId": str(result.inserted_id),
                "acknowledged": result.acknowledged,
            }

        if operation == "insertMany":
            docs = data if isinstance(data, list) else [data]
            now = utcnow()
            result = await coll.insert_many([{**d, "createdAt": now} for d in docs])
            return {
                "operation": "insertMany",
                "insertedCount": len(result.inserted_ids),
                "insertedIds": [str(i) for i in result.inserted_ids],
            }

        if operation in ("updateOne", "updateMany"):
            update = {"$set": {**data, "updatedAt": utcnow()}}
            if operation == "updateOne":
                result = await coll.update_one(query, update)
            else:
                result = await coll.update_many(query, update)
            return {
                "operation": operation,
                "matchedCount": result.matched_count,
                "modifiedCount": result.modified_count,
            }

        if operation in ("deleteOne", "deleteMany"):
            if operation == "deleteOne":
                result = await coll.delete_one(query)
            else:
                result = await coll.delete_many(query)
            return {"operation": operation, "deletedCount": result.deleted_count}

        if operation == "count":
            count = await coll.count_documents(query)
            return {"operation": "count", "count": count}

        pipeline = self.resolve(config.get("pipeline") or [], context)
        results = await coll.aggregate(pipeline).to_list(length=None)
        return {"operation": "aggregate", "count": len(results), "results": to_jsonable(results)}


DATABASE_NODE_TYPES = {
    NodeKind.MONGODB: MongoDBNode,
}
