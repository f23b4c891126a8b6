from queryproc.drivers.mongo.adapter import MongoAdapter

__all__ = ["MongoAdapter"]
