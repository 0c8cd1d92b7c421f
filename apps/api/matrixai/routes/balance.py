"""Balance routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from matrixai.routes.dependencies import get_ledger, get_owner_id
from matrixai.schemas.error import ErrorResponse, StoreWriteErrorResponse
from matrixai.schemas.ledger import BalanceResponse
from matrixai.services.ledger import BalanceLedger

router = APIRouter(prefix="/balance", tags=["Balance"])


@router.get(
    "",
    response_model=BalanceResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": StoreWriteErrorResponse}},
)
async def get_balance(
    owner_id: Annotated[str, Depends(get_owner_id)],
    ledger: Annotated[BalanceLedger, Depends(get_ledger)],
) -> BalanceResponse:
    return await ledger.get_balance(owner_id=owner_id)
