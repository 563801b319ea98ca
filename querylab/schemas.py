from typing import Any

from pydantic import BaseModel


# Fields stay loosely typed so a wrong type is answered with the service's
# own 400 body instead of a validation 422.
class SearchRequest(BaseModel):
    query: Any = None
    collection: Any = "movies"


class QueryRequest(BaseModel):
    query: Any = None
