import logging

import pymongo
from pymongo.errors import PyMongoError

from .config import Settings

logger = logging.getLogger(__name__)


class DatabaseContext:
    """The one MongoDB client/database shared by all requests.

    `db` stays None when no connection could be made; the API then
    answers "not connected" while static files keep being served.
    """

    def __init__(self, client=None, db=None):
        self.client = client
        self.db = db

    @property
    def connected(self) -> bool:
        return self.db is not None

    def close(self):
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None


def connect(settings: Settings) -> DatabaseContext:
    uri = settings.mongo_uri()
    if not uri:
        logger.warning("MONGODB_USERNAME, MONGODB_PASSWORD and MONGODB_LOCATION (or MONGODB_URI) "
                       "must be set for API functionality")
        logger.warning("Server will start without database connection - only serving static files")
        return DatabaseContext()

    client = None
    try:
        client = pymongo.MongoClient(
            uri,
            serverSelectionTimeoutMS=3000,
            connectTimeoutMS=3000,
            appname="querylab",
        )
        db = client[settings.mongodb_database]
        client.admin.command("ping")
        logger.info(f"MongoDB connection established (database '{settings.mongodb_database}')")
        return DatabaseContext(client, db)
    except PyMongoError as e:
        logger.error(f"MongoDB connection failed: {e}")
        logger.warning("Server will start without database connection - only serving static files")
        if client is not None:
            client.close()
        return DatabaseContext()
