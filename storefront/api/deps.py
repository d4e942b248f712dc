from fastapi import HTTPException, Request, status

from storefront.storage.base import Storage

# Fields never sent back to clients
PRIVATE_USER_FIELDS = {"password", "verification_token", "reset_token", "reset_token_expires"}


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def found(entity, what: str = "Resource"):
    if entity is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
    return entity


def deleted(removed: bool, what: str = "Resource"):
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
    return {"deleted": True}
