from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.responses import success_response
from shared.security import Principal, get_current_principal
from .models import Address
from .repository import AddressRepository
from .schemas import AddressCreate, AddressResponse

router = APIRouter(prefix="/users/me/addresses", tags=["Addresses"])


@router.get("")
async def list_addresses(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    addresses = await AddressRepository.list_for_user(db, principal.id)
    return success_response([AddressResponse.model_validate(a) for a in addresses])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_address(
    payload: AddressCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    address = Address(user_id=principal.id, **payload.model_dump())
    await AddressRepository.create(db, address)
    await db.commit()
    await db.refresh(address)
    return success_response(AddressResponse.model_validate(address), "Address created", 201)
