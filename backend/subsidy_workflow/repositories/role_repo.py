"""Role Repository - Actor roles from the user_roles collection"""
from typing import Optional, Set
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .base import RoleProvider
from .mongo_client import get_collection
from ..domain.enums import Role
from ..domain.errors import StoreUnavailableError
from ..engine.permission_guard import parse_roles


class RoleRepository(RoleProvider):
    """
    Roles stored as one document per actor:
    {"actor_id": "...", "roles": ["staff", "director"]}
    """

    def __init__(self, collection: Optional[Collection] = None):
        self._user_roles: Collection = collection if collection is not None else get_collection("user_roles")

    def get_roles(self, actor_id: str) -> Set[Role]:
        try:
            doc = self._user_roles.find_one({"actor_id": actor_id})
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not load roles for {actor_id}: {e}")
        if not doc:
            return set()
        return parse_roles(doc.get("roles"))
