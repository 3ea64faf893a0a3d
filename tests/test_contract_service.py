"""Tests for the rental contract ledger."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.locks import row_lock
from src.db.repositories import transition_contract
from src.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from src.models.rental_contract import ContractStatus
from src.notifications import InMemoryMailbox
from src.services import ContractService, ListingService

LANDLORD = "13800000001"
TENANT = "T1"


@pytest.fixture
async def listing_l1(listings: ListingService, make_listing) -> str:
    return await listings.publish(make_listing("L1"))


@pytest.mark.anyio
async def test_contract_lifecycle_with_quit_reject(
    contracts: ContractService, mailbox: InMemoryMailbox, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)
    assert created.status == ContractStatus.PENDING
    assert created.landlord_contact == LANDLORD

    active = await contracts.confirm(created.id, LANDLORD)
    assert active.status == ContractStatus.ACTIVE

    quitting = await contracts.quit_apply(created.id, TENANT, "moving")
    assert quitting.status == ContractStatus.QUIT_PENDING
    assert quitting.remark == "moving"
    assert (await mailbox.list(LANDLORD))[0].title == "Move-out request"

    back = await contracts.quit_reject(created.id, LANDLORD)
    assert back.status == ContractStatus.ACTIVE
    assert (await mailbox.list(TENANT))[0].title == "Move-out declined"


@pytest.mark.anyio
async def test_quit_confirm_ends_contract(
    contracts: ContractService, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)
    await contracts.confirm(created.id, LANDLORD)
    await contracts.quit_apply(created.id, TENANT, "")

    ended = await contracts.quit_confirm(created.id, LANDLORD)

    assert ended.status == ContractStatus.ENDED
    assert await contracts.list_by_tenant_active(TENANT) == []


@pytest.mark.anyio
async def test_quit_confirm_on_pending_contract_conflicts(
    contracts: ContractService, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)

    with pytest.raises(ConflictError):
        await contracts.quit_confirm(created.id, LANDLORD)

    assert (await contracts.get(created.id)).status == ContractStatus.PENDING


@pytest.mark.anyio
async def test_reject_pending_contract(
    contracts: ContractService, mailbox: InMemoryMailbox, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)

    rejected = await contracts.reject(created.id, LANDLORD)

    assert rejected.status == ContractStatus.REJECTED
    assert (await mailbox.list(TENANT))[0].title == "Contract declined"
    with pytest.raises(ConflictError):
        await contracts.confirm(created.id, LANDLORD)


@pytest.mark.anyio
async def test_check_order_not_found_then_forbidden_then_conflict(
    contracts: ContractService, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)

    with pytest.raises(NotFoundError):
        await contracts.quit_apply(9999, "nobody", "")
    # Wrong identity and wrong state together: identity wins.
    with pytest.raises(ForbiddenError):
        await contracts.quit_apply(created.id, "nobody", "")
    with pytest.raises(ForbiddenError):
        await contracts.confirm(created.id, TENANT)
    with pytest.raises(ConflictError):
        await contracts.quit_apply(created.id, TENANT, "")


@pytest.mark.anyio
async def test_landlord_is_fixed_at_creation(
    contracts: ContractService, listings: ListingService, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)

    await listings.update(listing_l1, {"landlordPhone": "13900000002"})

    with pytest.raises(ForbiddenError):
        await contracts.confirm(created.id, "13900000002")
    assert (await contracts.confirm(created.id, LANDLORD)).status == ContractStatus.ACTIVE


@pytest.mark.anyio
async def test_create_validation(
    contracts: ContractService, listings: ListingService, make_listing
) -> None:
    document = make_listing("L2")
    del document["landlordPhone"]
    await listings.publish(document)

    with pytest.raises(InvalidInputError):
        await contracts.create("L2", "")
    with pytest.raises(NotFoundError):
        await contracts.create("missing", TENANT)
    with pytest.raises(InvalidInputError):
        await contracts.create("L2", TENANT)


@pytest.mark.anyio
async def test_co_tenancy_and_listing_order(
    contracts: ContractService, listing_l1: str, clock
) -> None:
    first = await contracts.create(listing_l1, TENANT)
    clock.advance(minutes=1)
    second = await contracts.create(listing_l1, "T2")
    clock.advance(minutes=1)
    await contracts.confirm(first.id, LANDLORD)

    by_landlord = await contracts.list_by_landlord(LANDLORD)
    pending_only = await contracts.list_by_landlord(LANDLORD, ContractStatus.PENDING)
    tenant_active = await contracts.list_by_tenant_active(TENANT)

    assert [item.id for item in by_landlord] == [second.id, first.id]
    assert [item.id for item in pending_only] == [second.id]
    assert [item.id for item in tenant_active] == [first.id]
    assert tenant_active[0].listing is not None
    assert tenant_active[0].listing.title == "Sunny two-bed near metro"

    with pytest.raises(InvalidInputError):
        await contracts.list_by_landlord(LANDLORD, "archived")


@pytest.mark.anyio
async def test_confirm_while_row_lock_held_conflicts(
    contracts: ContractService, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)

    async with row_lock(scope="contract", row_id=created.id):
        with pytest.raises(ConflictError):
            await contracts.confirm(created.id, LANDLORD)

    assert (await contracts.confirm(created.id, LANDLORD)).status == ContractStatus.ACTIVE


@pytest.mark.anyio
async def test_second_confirm_from_another_session_conflicts(
    contracts: ContractService,
    sessionmaker: async_sessionmaker[AsyncSession],
    mailbox: InMemoryMailbox,
    listing_l1: str,
    clock,
) -> None:
    created = await contracts.create(listing_l1, TENANT)

    async with sessionmaker() as other_session:
        other = ContractService(other_session, mailbox, clock=clock)
        await other.get(created.id)

        await contracts.confirm(created.id, LANDLORD)

        with pytest.raises(ConflictError):
            await other.confirm(created.id, LANDLORD)


@pytest.mark.anyio
async def test_transition_is_compare_and_set(
    session: AsyncSession, contracts: ContractService, listing_l1: str, clock
) -> None:
    created = await contracts.create(listing_l1, TENANT)

    first = await transition_contract(
        session,
        created.id,
        expected=ContractStatus.PENDING.value,
        new_status=ContractStatus.ACTIVE.value,
        now=clock(),
    )
    second = await transition_contract(
        session,
        created.id,
        expected=ContractStatus.PENDING.value,
        new_status=ContractStatus.REJECTED.value,
        now=clock(),
    )

    assert first is True
    assert second is False
    assert (await contracts.get(created.id)).status == ContractStatus.ACTIVE


@pytest.mark.anyio
async def test_listing_delete_cascades_contracts(
    contracts: ContractService, listings: ListingService, listing_l1: str
) -> None:
    created = await contracts.create(listing_l1, TENANT)
    await contracts.confirm(created.id, LANDLORD)
    assert [item.id for item in await contracts.list_by_tenant_active(TENANT)] == [
        created.id
    ]

    await listings.delete(listing_l1)

    with pytest.raises(NotFoundError):
        await contracts.get(created.id)
    assert await contracts.list_by_landlord(LANDLORD) == []
    assert await contracts.list_by_tenant_active(TENANT) == []
