"""Rental contract ledger."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.locks import row_lock
from src.db.repositories import (
    ContractInsert,
    fetch_contract,
    fetch_contracts_for_landlord,
    fetch_contracts_for_tenant,
    insert_contract,
    transition_contract,
)
from src.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from src.models.rental_contract import ContractStatus, RentalContract
from src.notifications.base import Mailbox, NotificationKind, post_safely
from src.services.listing_service import ListingService, ListingSummary

logger = logging.getLogger(__name__)

Party = Literal["tenant", "landlord"]


@dataclass(slots=True)
class ContractView:
    id: int
    listing_id: str
    tenant_contact: str
    landlord_contact: str
    status: ContractStatus
    remark: str
    created_at: datetime
    updated_at: datetime
    listing: ListingSummary | None = None


def _to_view(contract: RentalContract, summary: ListingSummary | None) -> ContractView:
    return ContractView(
        id=contract.id,
        listing_id=contract.listing_id,
        tenant_contact=contract.tenant_contact,
        landlord_contact=contract.landlord_contact,
        status=ContractStatus(contract.status),
        remark=contract.remark,
        created_at=contract.created_at,
        updated_at=contract.updated_at,
        listing=summary,
    )


class ContractService:
    """Contract state machine.

    ``pending -> active | rejected``, ``active -> quit_pending`` and
    ``quit_pending -> ended | active``. Identities are checked against the
    contacts captured on the contract row, never the live listing.
    """

    _session: AsyncSession

    def __init__(
        self,
        session: AsyncSession,
        mailbox: Mailbox,
        listings: ListingService | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._mailbox = mailbox
        self._clock = clock or (lambda: datetime.now(UTC))
        self._listings = listings or ListingService(session, clock=self._clock)

    async def _enrich(self, contracts: list[RentalContract]) -> list[ContractView]:
        summaries = await self._listings.summaries(
            [contract.listing_id for contract in contracts]
        )
        return [
            _to_view(contract, summaries.get(contract.listing_id))
            for contract in contracts
        ]

    async def _transition(
        self,
        contract_id: int,
        *,
        actor: str,
        party: Party,
        expected: ContractStatus,
        new_status: ContractStatus,
        remark: str | None = None,
    ) -> RentalContract:
        """Locked read-check-write shared by every contract transition."""

        async with row_lock(scope="contract", row_id=contract_id):
            contract = await fetch_contract(self._session, contract_id)
            if contract is None:
                raise NotFoundError(f"Contract {contract_id} not found")

            owner = (
                contract.tenant_contact if party == "tenant" else contract.landlord_contact
            )
            if actor != owner:
                raise ForbiddenError(f"Only the {party} can do this on contract {contract_id}")

            if contract.status != expected:
                raise ConflictError(
                    f"Contract {contract_id} is {contract.status}, expected {expected}"
                )

            changed = await transition_contract(
                self._session,
                contract_id,
                expected=expected.value,
                new_status=new_status.value,
                now=self._clock(),
                remark=remark,
            )
            if not changed:
                raise ConflictError(f"Contract {contract_id} changed concurrently")

            logger.info(f"Contract {contract_id} moved {expected} -> {new_status}")
            refreshed = await fetch_contract(self._session, contract_id)
            if refreshed is None:
                raise NotFoundError(f"Contract {contract_id} not found")
            return refreshed

    async def _notify(
        self, recipient: str, contract: RentalContract, title: str, body: str
    ) -> None:
        await post_safely(
            self._mailbox,
            recipient,
            NotificationKind.ORDER,
            title,
            body,
            {
                "contract_id": contract.id,
                "listing_id": contract.listing_id,
                "status": contract.status,
            },
        )

    async def create(
        self, listing_id: str, tenant_contact: str, remark: str = ""
    ) -> ContractView:
        """Open a pending contract against the listing's current landlord."""

        if not (tenant_contact or "").strip():
            raise InvalidInputError("tenant contact is required")

        landlord = await self._listings.resolve_owner(listing_id)
        if landlord is None:
            raise InvalidInputError(f"Listing {listing_id} has no landlord contact")

        contract = await insert_contract(
            self._session,
            ContractInsert(
                listing_id=listing_id,
                tenant_contact=tenant_contact,
                landlord_contact=landlord,
                remark=remark or "",
            ),
            now=self._clock(),
        )
        logger.info(f"Contract {contract.id} created for listing {listing_id}")

        summary = await self._listings.summary(listing_id)
        await self._notify(
            landlord,
            contract,
            "New rental request",
            f"{tenant_contact} wants to rent '{summary.title}'.",
        )
        await self._notify(
            tenant_contact,
            contract,
            "Rental request sent",
            f"Your request to rent '{summary.title}' is waiting for the landlord.",
        )
        return _to_view(contract, summary)

    async def confirm(self, contract_id: int, landlord_contact: str) -> ContractView:
        contract = await self._transition(
            contract_id,
            actor=landlord_contact,
            party="landlord",
            expected=ContractStatus.PENDING,
            new_status=ContractStatus.ACTIVE,
        )
        summary = await self._listings.summary(contract.listing_id)
        await self._notify(
            contract.tenant_contact,
            contract,
            "Contract confirmed",
            f"The landlord confirmed your rental of '{summary.title}'.",
        )
        return _to_view(contract, summary)

    async def reject(self, contract_id: int, landlord_contact: str) -> ContractView:
        contract = await self._transition(
            contract_id,
            actor=landlord_contact,
            party="landlord",
            expected=ContractStatus.PENDING,
            new_status=ContractStatus.REJECTED,
        )
        summary = await self._listings.summary(contract.listing_id)
        await self._notify(
            contract.tenant_contact,
            contract,
            "Contract declined",
            f"The landlord declined your rental of '{summary.title}'.",
        )
        return _to_view(contract, summary)

    async def quit_apply(
        self, contract_id: int, tenant_contact: str, reason: str = ""
    ) -> ContractView:
        """Tenant asks to end an active contract; ``reason`` replaces the remark."""

        contract = await self._transition(
            contract_id,
            actor=tenant_contact,
            party="tenant",
            expected=ContractStatus.ACTIVE,
            new_status=ContractStatus.QUIT_PENDING,
            remark=reason or "",
        )
        summary = await self._listings.summary(contract.listing_id)
        await self._notify(
            contract.landlord_contact,
            contract,
            "Move-out request",
            f"{contract.tenant_contact} asked to end the rental of '{summary.title}'."
            + (f" Reason: {reason}" if reason else ""),
        )
        return _to_view(contract, summary)

    async def quit_confirm(self, contract_id: int, landlord_contact: str) -> ContractView:
        contract = await self._transition(
            contract_id,
            actor=landlord_contact,
            party="landlord",
            expected=ContractStatus.QUIT_PENDING,
            new_status=ContractStatus.ENDED,
        )
        summary = await self._listings.summary(contract.listing_id)
        await self._notify(
            contract.tenant_contact,
            contract,
            "Move-out approved",
            f"Your rental of '{summary.title}' has ended.",
        )
        return _to_view(contract, summary)

    async def quit_reject(self, contract_id: int, landlord_contact: str) -> ContractView:
        contract = await self._transition(
            contract_id,
            actor=landlord_contact,
            party="landlord",
            expected=ContractStatus.QUIT_PENDING,
            new_status=ContractStatus.ACTIVE,
        )
        summary = await self._listings.summary(contract.listing_id)
        await self._notify(
            contract.tenant_contact,
            contract,
            "Move-out declined",
            f"The landlord declined your move-out from '{summary.title}'. "
            "The contract stays active.",
        )
        return _to_view(contract, summary)

    async def get(self, contract_id: int) -> ContractView:
        contract = await fetch_contract(self._session, contract_id)
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        summary = await self._listings.summary(contract.listing_id)
        return _to_view(contract, summary)

    async def list_by_landlord(
        self, landlord_contact: str, status: ContractStatus | str | None = None
    ) -> list[ContractView]:
        if status is not None and status not in set(ContractStatus):
            raise InvalidInputError(f"Unknown contract status: {status}")
        contracts = await fetch_contracts_for_landlord(
            self._session, landlord_contact, status=status
        )
        return await self._enrich(contracts)

    async def list_by_tenant_active(self, tenant_contact: str) -> list[ContractView]:
        contracts = await fetch_contracts_for_tenant(
            self._session, tenant_contact, status=ContractStatus.ACTIVE.value
        )
        return await self._enrich(contracts)
