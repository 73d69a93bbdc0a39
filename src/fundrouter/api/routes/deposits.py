"""Deposit creation, query and routing endpoints."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from fundrouter.chain.base import ChainError
from fundrouter.chain.factory import get_chain_client, get_signer
from fundrouter.config import get_settings
from fundrouter.ledger.database import StoreError, get_db
from fundrouter.ledger.models import Deposit, DepositStatus
from fundrouter.ledger.repository import DepositFilters, DepositRepository
from fundrouter.services.deposit_router import DeploymentFailedError, DepositRouter
from fundrouter.services.deposits import create_deposit
from fundrouter.utils.hexcodec import (
    ADDRESS_LENGTH,
    SALT_LENGTH,
    InvalidInputError,
    encode_hex,
    validate_hex,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PAGE_SIZE = 100


class CreateDepositRequest(BaseModel):
    """Request to open a deposit for a user."""

    user: str = Field(..., description="20-byte user identifier as 0x-prefixed hex")


class InsertResult(BaseModel):
    id: int


class DepositResponse(BaseModel):
    """Deposit with hex-encoded byte fields."""

    id: int
    user: str
    salt: str
    address: str
    balance: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, deposit: Deposit) -> "DepositResponse":
        return cls(
            id=deposit.id,
            user=encode_hex(deposit.user),
            salt=encode_hex(deposit.salt),
            address=encode_hex(deposit.address),
            balance=encode_hex(deposit.balance),
            status=str(deposit.status),
            created_at=deposit.created_at,
            updated_at=deposit.updated_at,
        )


class RoutingResponse(BaseModel):
    tx_hashes: list[str]
    routed: int
    failed: int
    skipped: int
    counts: dict[str, int]


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _store_unavailable(error: StoreError) -> HTTPException:
    logger.error(f"Deposit store failed: {error}")
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))


def _optional_hex(value: Optional[str], length: int, name: str) -> Optional[bytes]:
    if value is None:
        return None
    try:
        return validate_hex(value, length, name)
    except InvalidInputError as e:
        raise _bad_request(str(e))


def _contract_addresses() -> tuple[bytes, bytes]:
    settings = get_settings()
    return (
        validate_hex(settings.deployer_address, ADDRESS_LENGTH, "deployer_address"),
        validate_hex(settings.treasury_address, ADDRESS_LENGTH, "treasury_address"),
    )


@router.post("/deposits", response_model=InsertResult, status_code=status.HTTP_201_CREATED)
async def insert_deposit(request: CreateDepositRequest):
    """Open a deposit: derive the proxy address and store it as pending."""
    try:
        user = validate_hex(request.user, ADDRESS_LENGTH, "user")
    except InvalidInputError as e:
        raise _bad_request(str(e))

    deployer, _ = _contract_addresses()
    signer = get_signer()

    try:
        deposit = await create_deposit(get_chain_client(), deployer, signer.address, user)
    except ChainError as e:
        logger.warning(f"Address prediction failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except StoreError as e:
        raise _store_unavailable(e)

    return InsertResult(id=deposit.id)


@router.get("/deposits", response_model=list[DepositResponse])
async def query_deposits(
    user: Optional[str] = None,
    salt: Optional[str] = None,
    address: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = 10,
    offset: int = 0,
):
    """List deposits, newest first."""
    statuses: set[DepositStatus] = set()
    if status_filter is not None:
        try:
            statuses = {DepositStatus(status_filter)}
        except ValueError:
            raise _bad_request(f"unknown status: {status_filter}")

    filters = DepositFilters(
        user=_optional_hex(user, ADDRESS_LENGTH, "user"),
        salt=_optional_hex(salt, SALT_LENGTH, "salt"),
        address=_optional_hex(address, ADDRESS_LENGTH, "address"),
        statuses=statuses,
        limit=min(limit, MAX_PAGE_SIZE),
        offset=max(offset, 0),
    )

    try:
        async with get_db() as session:
            deposits = await DepositRepository(session).query(filters)
    except StoreError as e:
        raise _store_unavailable(e)

    return [DepositResponse.from_model(d) for d in deposits]


@router.post("/deposits/route", response_model=RoutingResponse)
async def route_deposits(address: Optional[str] = None):
    """Deploy missing proxies and sweep funds, optionally for one address."""
    target = _optional_hex(address, ADDRESS_LENGTH, "address")
    deployer, treasury = _contract_addresses()
    settings = get_settings()

    deposit_router = DepositRouter(
        get_chain_client(),
        get_signer(),
        deployer,
        treasury,
        lock_timeout=settings.sweep_lock_timeout,
    )

    try:
        result = await deposit_router.route(target)
    except DeploymentFailedError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except StoreError as e:
        raise _store_unavailable(e)

    return RoutingResponse(**result.to_dict())
