import logging

from fastapi import APIRouter, Depends, HTTPException, status

from storefront.api.deps import PRIVATE_USER_FIELDS, deleted, found, get_storage
from storefront.core.security import generate_token, is_password_hash, reset_token_expiry
from storefront.models.schemas import (
    ForgotPasswordRequest, LoginRequest, RegisterRequest, ResetPasswordRequest, User, UserCreate,
    UserUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def plain_password(password):
    # Clients send the password itself; stored hashes are only accepted from seed data and tooling
    if password is not None and is_password_hash(password):
        raise HTTPException(status_code=422, detail="Password must not be pre-hashed")
    return password


@router.post("/register", response_model=User, response_model_exclude=PRIVATE_USER_FIELDS,
             status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, storage=Depends(get_storage)):
    plain_password(payload.password)
    user = storage.create_user(UserCreate(**payload.model_dump(), is_verified=False, verification_token=generate_token()))
    logger.info(f"Registered user {user.id} ({user.username})")
    return user


@router.post("/login", response_model=User, response_model_exclude=PRIVATE_USER_FIELDS)
def login(payload: LoginRequest, storage=Depends(get_storage)):
    user = storage.authenticate_user(payload.username, payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    return user


@router.get("/verify/{token}", response_model=User, response_model_exclude=PRIVATE_USER_FIELDS)
def verify_email(token: str, storage=Depends(get_storage)):
    user = found(storage.get_user_by_verification_token(token), "Verification token")
    return found(storage.verify_user(user.id), "User")


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, storage=Depends(get_storage)):
    user = storage.get_user_by_email(payload.email)
    if user is not None:
        storage.update_user(user.id, UserUpdate(reset_token=generate_token(), reset_token_expires=reset_token_expiry()))
        logger.info(f"Password reset requested for user {user.id}")
    # Same answer whether or not the address is registered
    return {"message": "If the email is registered, a reset link has been issued"}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, storage=Depends(get_storage)):
    plain_password(payload.password)
    user = found(storage.get_user_by_reset_token(payload.token), "Reset token")
    storage.update_user(user.id, UserUpdate(password=payload.password, reset_token=None, reset_token_expires=None))
    return {"message": "Password updated"}


@router.get("/{user_id}", response_model=User, response_model_exclude=PRIVATE_USER_FIELDS)
def get_user(user_id: int, storage=Depends(get_storage)):
    return found(storage.get_user(user_id), "User")


@router.patch("/{user_id}", response_model=User, response_model_exclude=PRIVATE_USER_FIELDS)
def update_user(user_id: int, payload: UserUpdate, storage=Depends(get_storage)):
    plain_password(payload.password)
    return found(storage.update_user(user_id, payload), "User")


@router.delete("/{user_id}")
def delete_user(user_id: int, storage=Depends(get_storage)):
    return deleted(storage.delete_user(user_id), "User")
