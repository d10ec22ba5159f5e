# auth.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field, TypeAdapter, ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hausjogja.common import CamelModel, Pagination, dump, success
from hausjogja.db import get_db
from hausjogja.models import Order, Role, User
from hausjogja.settings import Settings
from hausjogja.uploads import PROFILE_IMAGES, remove_image, save_image

logger = logging.getLogger(__name__)

# ===================================================================
# Pydantic Schemas (Data Validation)
# ===================================================================

class UserCreate(BaseModel):
    """Schema for user registration request."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserPublic(CamelModel):
    """Schema for safely exposing user data."""
    id: int
    name: str
    email: str
    role: Role
    image: Optional[str] = None
    created_at: Optional[datetime] = None


# ===================================================================
# Configuration
# ===================================================================

router = APIRouter(prefix="/auth", tags=["Auth"])

pwd_context = CryptContext(schemes=["scrypt", "bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

_email_adapter = TypeAdapter(EmailStr)


# ===================================================================
# Utility Functions
# ===================================================================

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies a plain password against a hashed one."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hashes a plain password."""
    return pwd_context.hash(password)


def create_access_token(user_id: int, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    """Creates a JWT access token carrying the user id."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"id": user_id, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Fetches a user from the database by email."""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


def _user_with_token(user: User, settings: Settings) -> dict:
    data = dump(UserPublic.model_validate(user))
    data["token"] = create_access_token(user.id, settings)
    return data


# ===================================================================
# Current User Dependencies
# ===================================================================

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    """Dependency to get the current authenticated user from a bearer token."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, no token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authorized, token failed",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise credentials_exception

    user_id = payload.get("id")
    if not isinstance(user_id, int):
        raise credentials_exception

    user = await db.get(User, user_id)
    if user is None:
        raise credentials_exception
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized as an admin")
    return current_user


# ===================================================================
# API Endpoints
# ===================================================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Registers a new (non-admin) user and returns it with a token."""
    existing_user = await get_user_by_email(db, user_in.email)
    if existing_user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    new_user = User(
        name=user_in.name,
        email=user_in.email,
        password=get_password_hash(user_in.password),
        role=Role.USER,
        image=settings.DEFAULT_PROFILE_IMAGE,
    )
    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)

    logger.info(f"Registered user {new_user.id} ({new_user.email})")
    return success(_user_with_token(new_user, settings))


@router.post("/login")
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Checks email and password and returns the user with a fresh token."""
    user = await get_user_by_email(db, credentials.email)
    if not user or not verify_password(credentials.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return success(_user_with_token(user, settings))


@router.get("/profile")
async def read_profile(current_user: User = Depends(get_current_user)):
    return success(dump(UserPublic.model_validate(current_user)))


@router.put("/profile")
async def update_profile(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    """
    Updates the caller's profile. Only the fields sent change; a new
    profile picture replaces the old one, which is deleted afterwards.
    """
    if email:
        try:
            email = _email_adapter.validate_python(email)
        except ValidationError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please provide a valid email")
        if email != current_user.email:
            owner = await get_user_by_email(db, email)
            if owner is not None and owner.id != current_user.id:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is already in use")
            current_user.email = email

    if password:
        if len(password) < 6:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Password must be at least 6 characters",
            )
        current_user.password = get_password_hash(password)

    if name:
        current_user.name = name

    old_image = None
    image_path = await save_image(image, PROFILE_IMAGES, settings)
    if image_path:
        old_image = current_user.image
        current_user.image = image_path

    try:
        await db.commit()
    except Exception:
        remove_image(image_path, settings)
        raise
    await db.refresh(current_user)

    if old_image:
        remove_image(old_image, settings)

    return success(_user_with_token(current_user, settings))


@router.get("/users")
async def list_users(
    pagination: Pagination = Depends(),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Lists all users, newest first (admin only)."""
    query = (
        select(User)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    users = (await db.execute(query)).scalars().all()
    total = (await db.execute(select(func.count(User.id)))).scalar_one()

    return success(
        [dump(UserPublic.model_validate(u)) for u in users],
        pagination=pagination.meta(total),
    )


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
):
    """Deletes a user together with their orders (admin only)."""
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")

    query = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.orders).selectinload(Order.items))
    )
    user = (await db.execute(query)).scalars().first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    image = user.image
    await db.delete(user)
    await db.commit()
    remove_image(image, settings)

    logger.info(f"Admin {admin.id} deleted user {user_id}")
    return success(message="User deleted")
