"""
Authentication service with JWT token management.

Accounts are provisioned outside this service; it only verifies credentials
and resolves the caller of each request.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from bson import ObjectId

from ..config import get_settings
from ..database import Database, USERS, storage_guard
from ..models.user import User, Token, TokenData, UserRole

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _to_user(doc: dict) -> User:
    return User(
        _id=str(doc["_id"]),
        email=doc["email"],
        full_name=doc["full_name"],
        username=doc.get("username"),
        role=UserRole(doc["role"]),
        is_active=doc.get("is_active", True),
        created_at=doc["created_at"]
    )


class AuthService:
    """Credential checks and caller resolution."""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash."""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Hash a password."""
        return pwd_context.hash(password)

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT access token."""
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Decode and validate JWT token."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
            user_id: str = payload.get("sub")
            email: str = payload.get("email")
            role: str = payload.get("role")
            if user_id is None:
                return None
            return TokenData(user_id=user_id, email=email, role=UserRole(role) if role else None)
        except (JWTError, ValueError):
            return None

    @classmethod
    async def get_user_by_email(cls, email: str) -> Optional[dict]:
        """Get user by email from database."""
        users = Database.get_collection(USERS)
        async with storage_guard("user lookup"):
            return await users.find_one({"email": email.lower()})

    @classmethod
    async def get_user_by_id(cls, user_id: str) -> Optional[dict]:
        """Get user by ID from database."""
        if not ObjectId.is_valid(user_id):
            return None
        users = Database.get_collection(USERS)
        async with storage_guard("user lookup"):
            return await users.find_one({"_id": ObjectId(user_id)})

    @classmethod
    async def authenticate_user(cls, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password."""
        user = await cls.get_user_by_email(email)
        if not user:
            return None
        if not cls.verify_password(password, user["hashed_password"]):
            return None
        return _to_user(user)

    @classmethod
    async def login(cls, email: str, password: str) -> Optional[Token]:
        """Login user and return access token."""
        user = await cls.authenticate_user(email, password)
        if not user:
            return None

        access_token = cls.create_access_token(
            data={
                "sub": user.id,
                "email": user.email,
                "role": user.role.value
            }
        )

        return Token(access_token=access_token, user=user)

    @classmethod
    async def get_current_user(cls, token: str) -> Optional[User]:
        """Get current user from token."""
        token_data = cls.decode_token(token)
        if not token_data:
            return None

        user = await cls.get_user_by_id(token_data.user_id)
        if not user:
            return None

        return _to_user(user)
