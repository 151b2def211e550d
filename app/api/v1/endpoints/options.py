from fastapi import APIRouter, Depends, Path

from app.api.deps import get_current_user_id, get_option_store
from app.schemas.options import OptionOut, OptionValue
from app.services.option_store import OptionStore

router = APIRouter(prefix="/options", tags=["Options"])

_KEY = Path(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.:-]+$")


@router.get("/{key}", response_model=OptionOut)
async def get_option(
    key: str = _KEY,
    owner_id: str = Depends(get_current_user_id),
    store: OptionStore = Depends(get_option_store),
) -> OptionOut:
    return OptionOut(key=key, value=await store.load(owner_id, key))


@router.put("/{key}", response_model=OptionOut)
async def put_option(
    body: OptionValue,
    key: str = _KEY,
    owner_id: str = Depends(get_current_user_id),
    store: OptionStore = Depends(get_option_store),
) -> OptionOut:
    stored = await store.save(owner_id, key, body.value)
    return OptionOut(key=key, value=body.value, stored=stored)


@router.delete("/{key}", response_model=OptionOut)
async def delete_option(
    key: str = _KEY,
    owner_id: str = Depends(get_current_user_id),
    store: OptionStore = Depends(get_option_store),
) -> OptionOut:
    deleted = await store.delete(owner_id, key)
    return OptionOut(key=key, value=None, stored=not deleted)
