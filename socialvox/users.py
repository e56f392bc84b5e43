import logging
from typing import List, Optional

from .errors import ConflictError, NotFoundError, PermissionDenied
from .network import SimulatedNetwork
from .schemas import User, UserCollections, UserCreate, UserRole, UserUpdate

logger = logging.getLogger(__name__)

# Bootstrap account that always has to exist.
PROTECTED_USERNAME = "admin"


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


class UserDirectory:
    """User accounts. Mutations follow the store's round-trip-then-apply shape."""

    def __init__(self, network: SimulatedNetwork, collections: Optional[UserCollections] = None):
        self._network = network
        self._data = collections or UserCollections()
        self.revision = 0

    def snapshot(self) -> UserCollections:
        return self._data.model_copy(deep=True)

    def load(self, collections: UserCollections) -> None:
        self._data = collections

    def list_users(self) -> List[User]:
        return list(self._data.users)

    def get_user(self, user_id: str) -> User:
        user = next((u for u in self._data.users if u.id == user_id), None)
        if user is None:
            raise NotFoundError("Usuario", user_id)
        return user

    def find_by_identifier(self, identifier: str) -> Optional[User]:
        """Looks a user up by username or email, ignoring case."""
        return next(
            (
                u
                for u in self._data.users
                if _same(u.username, identifier) or _same(u.email, identifier)
            ),
            None,
        )

    def active_surveyors(self) -> List[User]:
        return [u for u in self._data.users if u.active and u.role == UserRole.SURVEYOR]

    def _check_conflicts(
        self, username: Optional[str], email: Optional[str], exclude_id: Optional[str] = None
    ) -> None:
        for user in self._data.users:
            if user.id == exclude_id:
                continue
            if username is not None and _same(user.username, username):
                raise ConflictError("El nombre de usuario ya existe", field="username")
            if email is not None and _same(user.email, email):
                raise ConflictError(
                    "El correo electrónico ya está registrado", field="email"
                )

    def _replace(self, user_id: str, changes: dict) -> User:
        for index, current in enumerate(self._data.users):
            if current.id == user_id:
                updated = current.model_copy(update=changes)
                self._data.users[index] = updated
                self.revision += 1
                return updated
        raise NotFoundError("Usuario", user_id)

    async def create_user(self, data: UserCreate) -> User:
        username = data.username.strip()
        self._check_conflicts(username, data.email)
        user = User(
            username=username,
            name=data.name.strip(),
            email=data.email,
            role=data.role,
            active=data.active,
            password=data.password,
        )
        await self._network.round_trip("create_user")

        # Someone may have taken the name while we were waiting.
        self._check_conflicts(user.username, user.email)
        self._data.users.append(user)
        self.revision += 1
        logger.info("User %s created (%s)", user.username, user.role.value)
        return user

    async def update_user(self, user_id: str, updates: UserUpdate) -> User:
        current = self.get_user(user_id)
        changes = updates.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if v is not None}
        if "username" in changes:
            changes["username"] = changes["username"].strip()
        if "email" in changes:
            changes["email"] = changes["email"].strip()
        if current.role == UserRole.ADMIN_MANAGER and (
            changes.get("role", current.role) != UserRole.ADMIN_MANAGER
            or changes.get("active") is False
        ):
            raise PermissionDenied(
                "No se puede degradar ni desactivar al administrador principal",
                redirect_to="/admin/users",
            )
        self._check_conflicts(changes.get("username"), changes.get("email"), user_id)

        await self._network.round_trip("update_user")

        self._check_conflicts(changes.get("username"), changes.get("email"), user_id)
        user = self._replace(user_id, changes)
        logger.info("User %s updated (%s)", user.username, ", ".join(sorted(changes)))
        return user

    async def delete_user(self, user_id: str) -> None:
        user = self.get_user(user_id)
        if user.role == UserRole.ADMIN_MANAGER or user.username == PROTECTED_USERNAME:
            raise PermissionDenied(
                "No se puede eliminar la cuenta de administrador principal",
                redirect_to="/admin/users",
            )
        await self._network.round_trip("delete_user")

        self._data.users = [u for u in self._data.users if u.id != user_id]
        self.revision += 1
        logger.info("User %s deleted", user.username)

    async def change_password(self, user_id: str, new_password: str) -> User:
        self.get_user(user_id)
        await self._network.round_trip("change_password")
        user = self._replace(user_id, {"password": new_password})
        logger.info("Password changed for %s", user.username)
        return user
