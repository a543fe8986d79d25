"""In-memory async repositories for users, scans and animals.

Records are copied on the way in and out so callers never share mutable
state with the store, the same as with a real database driver.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional

from models.records import Animal, Scan, User
from utils.errors import NotFoundError

logger = logging.getLogger("herd_health.storage.repository")


def normalize_phone(phone: Optional[str]) -> str:
    """Keep only the digits of a phone number (drops `whatsapp:` and `+`)."""
    if not phone:
        return ""
    phone = re.sub(r"^whatsapp:", "", phone.strip(), flags=re.IGNORECASE)
    return re.sub(r"\D", "", phone)


class UserRepository:
    def __init__(self):
        self._users: Dict[str, User] = {}

    def load(self, users: Iterable[User]) -> int:
        count = 0
        for user in users:
            self._users[user.id] = user.model_copy(deep=True)
            count += 1
        return count

    async def create(self, user: User) -> User:
        self._users[user.id] = user.model_copy(deep=True)
        logger.info(f"User registered: {user.id}")
        return user

    async def get(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def find_by_phone(self, phone: str) -> Optional[User]:
        """Match on digits only, allowing either number to carry a country prefix."""
        normalized = normalize_phone(phone)
        if not normalized:
            return None
        for user in self._users.values():
            candidate = normalize_phone(user.phone)
            if not candidate:
                continue
            if candidate == normalized or normalized.endswith(candidate) or candidate.endswith(normalized):
                return user.model_copy(deep=True)
        return None


class ScanRepository:
    def __init__(self):
        self._scans: Dict[str, Scan] = {}

    async def save(self, scan: Scan) -> Scan:
        self._scans[scan.id] = scan.model_copy(deep=True)
        return scan

    async def get(self, scan_id: str) -> Scan:
        scan = self._scans.get(scan_id)
        if scan is None:
            raise NotFoundError("Escaneo no encontrado")
        return scan.model_copy(deep=True)

    async def get_many(self, scan_ids: Iterable[str]) -> List[Scan]:
        """Return the scans that exist, in the order of `scan_ids`."""
        return [
            self._scans[scan_id].model_copy(deep=True)
            for scan_id in scan_ids
            if scan_id in self._scans
        ]

    async def list_for_user(self, user_id: str, animal_id: Optional[str] = None) -> List[Scan]:
        scans = [
            s for s in self._scans.values()
            if s.user_id == user_id and (animal_id is None or s.animal_id == animal_id)
        ]
        scans.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in scans]


class AnimalRepository:
    def __init__(self):
        self._animals: Dict[str, Animal] = {}

    async def save(self, animal: Animal) -> Animal:
        self._animals[animal.id] = animal.model_copy(deep=True)
        return animal

    async def get(self, animal_id: str) -> Animal:
        animal = self._animals.get(animal_id)
        if animal is None:
            raise NotFoundError("Animal no encontrado")
        return animal.model_copy(deep=True)

    async def list_for_user(self, user_id: str) -> List[Animal]:
        animals = [a for a in self._animals.values() if a.user_id == user_id]
        animals.sort(key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in animals]


class Repositories:
    """Bundle of the stores the application wires together."""

    def __init__(
        self,
        users: Optional[UserRepository] = None,
        scans: Optional[ScanRepository] = None,
        animals: Optional[AnimalRepository] = None,
    ):
        self.users = users or UserRepository()
        self.scans = scans or ScanRepository()
        self.animals = animals or AnimalRepository()
