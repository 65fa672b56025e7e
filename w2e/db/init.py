import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from w2e.db.documents import DOCUMENT_MODELS


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(mongodb_uri: str, db_name: str) -> AsyncIOMotorClient:
    """Connect, register documents and build indexes. Transactions need a replica set."""
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    kwargs = {"tz_aware": False}
    if _use_tls(mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(mongodb_uri, **kwargs)
    await init_beanie(database=client[db_name], document_models=DOCUMENT_MODELS)
    return client
