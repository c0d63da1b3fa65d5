from __future__ import annotations
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4
import time

# ====== Concepts ======

class ConceptError(Exception):
    status = 400

class NotFoundError(ConceptError):
    status = 404

class NotAllowedError(ConceptError):
    status = 403


class Id:
    """Record identifier. Two Id instances naming the same record are
    different objects, so compare them with equals()."""
    __slots__ = ("hex",)
    def __init__(self, hex: Optional[str] = None):
        self.hex = hex or uuid4().hex
    @classmethod
    def coerce(cls, value: Any) -> "Id":
        return value if isinstance(value, Id) else cls(str(value))
    def equals(self, other: Any) -> bool:
        if isinstance(other, Id):
            return other.hex == self.hex
        return isinstance(other, str) and other == self.hex
    def __str__(self) -> str:
        return self.hex
    def __repr__(self) -> str:
        return f"Id({self.hex})"


class Concept:
    # names of the methods exposed as actions, registered as "<name>.<method>"
    ACTIONS: Tuple[str, ...] = ()
    def __init__(self, name: str):
        self.name = name
    def actions(self) -> Iterator[Tuple[str, Callable[..., Any]]]:
        for action in self.ACTIONS:
            yield f"{self.name}.{action}", getattr(self, action)


# 1) Account: credentials
class Account(Concept):
    ACTIONS = ("create", "authenticate", "getById", "getByUsername", "update", "delete")
    def __init__(self, name: str = "Account"):
        super().__init__(name)
        self._accounts: Dict[str, Dict[str, Any]] = {}
    def _find(self, **query: Any) -> Optional[Dict[str, Any]]:
        for rec in self._accounts.values():
            if all(rec[k] == v for k, v in query.items()):
                return rec
        return None
    @staticmethod
    def _sanitize(rec: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in rec.items() if k != "password"}
    async def create(self, username: str, password: str, email: str) -> Id:
        if not username or not password or not email:
            raise ConceptError("Username, password, and email must be non-empty!")
        if self._find(username=username):
            raise NotAllowedError(f"User with username {username} already exists!")
        uid = Id()
        self._accounts[uid.hex] = {"_id": uid, "username": username, "password": password,
                                   "email": email, "createdAt": time.time()}
        return uid
    async def authenticate(self, email: str, password: str) -> Id:
        rec = self._find(email=email, password=password)
        if rec is None:
            raise NotAllowedError("Email or password is incorrect.")
        return rec["_id"]
    async def getById(self, user: Any) -> Dict[str, Any]:
        rec = self._accounts.get(Id.coerce(user).hex)
        if rec is None:
            raise NotFoundError("User not found!")
        return self._sanitize(rec)
    async def getByUsername(self, username: str) -> Id:
        rec = self._find(username=username)
        if rec is None:
            raise NotFoundError("User not found!")
        return rec["_id"]
    async def update(self, user: Any, username: str) -> bool:
        rec = self._accounts.get(Id.coerce(user).hex)
        if rec is None:
            raise NotFoundError("User not found!")
        if username == rec["username"]:
            return False
        if self._find(username=username):
            raise NotAllowedError(f"User with username {username} already exists!")
        rec["username"] = username
        return True
    async def delete(self, user: Any) -> bool:
        return self._accounts.pop(Id.coerce(user).hex, None) is not None


# 2) Profile: public user info, keyed by the account id
class Profile(Concept):
    ACTIONS = ("create", "getById", "getByUsername", "rename", "adjustFollowers", "delete")
    def __init__(self, name: str = "Profile"):
        super().__init__(name)
        self._profiles: Dict[str, Dict[str, Any]] = {}
    def _get(self, user: Any) -> Dict[str, Any]:
        rec = self._profiles.get(Id.coerce(user).hex)
        if rec is None:
            raise NotFoundError("Profile not found!")
        return rec
    async def create(self, user: Any, username: str, bio: str, image: str) -> Dict[str, Any]:
        uid = Id.coerce(user)
        rec = {"_id": uid, "username": username, "bio": bio, "image": image, "followers": 0}
        self._profiles[uid.hex] = rec
        return dict(rec)
    async def getById(self, user: Any) -> Dict[str, Any]:
        return dict(self._get(user))
    async def getByUsername(self, username: str) -> Dict[str, Any]:
        for rec in self._profiles.values():
            if rec["username"] == username:
                return dict(rec)
        raise NotFoundError("Profile not found!")
    async def rename(self, user: Any, username: str) -> Dict[str, Any]:
        rec = self._get(user)
        rec["username"] = username
        return dict(rec)
    async def adjustFollowers(self, user: Any, delta: int) -> int:
        rec = self._get(user)
        rec["followers"] = max(0, rec["followers"] + delta)
        return rec["followers"]
    async def delete(self, user: Any) -> bool:
        return self._profiles.pop(Id.coerce(user).hex, None) is not None


# 3) Follower: user -> target edges
class Follower(Concept):
    ACTIONS = ("follow", "unfollow", "isFollowing", "getFollowers", "removeUser")
    def __init__(self, name: str = "Follower"):
        super().__init__(name)
        self._edges: List[Tuple[Id, Id]] = []
    def _index(self, user: Id, target: Id) -> int:
        for i, (u, t) in enumerate(self._edges):
            if u.equals(user) and t.equals(target):
                return i
        return -1
    async def follow(self, user: Any, target: Any) -> bool:
        user, target = Id.coerce(user), Id.coerce(target)
        if user.equals(target):
            raise NotAllowedError("Cannot follow yourself!")
        if self._index(user, target) >= 0:
            return False
        self._edges.append((user, target))
        return True
    async def unfollow(self, user: Any, target: Any) -> bool:
        i = self._index(Id.coerce(user), Id.coerce(target))
        if i < 0:
            return False
        del self._edges[i]
        return True
    async def isFollowing(self, user: Any, target: Any) -> bool:
        return self._index(Id.coerce(user), Id.coerce(target)) >= 0
    async def getFollowers(self, target: Any) -> List[Id]:
        target = Id.coerce(target)
        return [u for u, t in self._edges if t.equals(target)]
    async def removeUser(self, user: Any) -> int:
        user = Id.coerce(user)
        before = len(self._edges)
        self._edges = [(u, t) for u, t in self._edges if not (u.equals(user) or t.equals(user))]
        return before - len(self._edges)


# 4) Merge: build response messages out of several concepts' records
class Merge(Concept):
    ACTIONS = ("createProfileMessage",)
    def __init__(self, name: str = "Merge"):
        super().__init__(name)
    def createProfileMessage(self, profile: Dict[str, Any], following: bool) -> Dict[str, Any]:
        return {"username": profile["username"], "bio": profile.get("bio") or "",
                "image": profile.get("image") or "", "following": following}


# 5) Mapper
class Mapper(Concept):
    ACTIONS = ("mapIds",)
    def __init__(self, name: str = "Mapper"):
        super().__init__(name)
    def mapIds(self, objects: List[Dict[str, Any]]) -> List[Any]:
        return [obj["_id"] for obj in objects]
