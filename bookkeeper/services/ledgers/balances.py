"""
Balance Ledgers

Customer receivables and bank cash are the same shape: a named account
holding one running balance that only ever changes by a signed delta.

There is no transfer primitive. Moving money between two accounts is
two apply_delta calls, and the caller owns what happens if the second
one fails.
"""

from decimal import Decimal
from typing import Generic, Optional
from uuid import UUID

import structlog

from bookkeeper.models.accounts import BankAccount, Customer
from bookkeeper.services.ledgers.locks import KeyedLocks
from bookkeeper.services.storage.interface import (
    AccountStorageInterface,
    AccountT,
    DuplicateNameError,
)


class BalanceLedger(Generic[AccountT]):
    """Shared implementation for customer and bank balances."""

    kind: str = "account"
    model_cls: type = None

    def __init__(
        self,
        storage: AccountStorageInterface[AccountT],
        locks: Optional[KeyedLocks] = None,
    ):
        self._storage = storage
        self._locks = locks or KeyedLocks()
        self._logger = structlog.get_logger(f"bookkeeper.{self.kind}")

    def _account_key(self, owner_id: str, account_id: UUID) -> tuple:
        return (owner_id, self.kind, account_id)

    def _name_key(self, owner_id: str, name: str) -> tuple:
        return (owner_id, f"{self.kind}_name", name.strip().casefold())

    async def apply_delta(self, owner_id: str, account_id: UUID, amount: Decimal) -> Decimal:
        """
        Add a signed amount to the account balance.

        Returns:
            The new balance

        Raises:
            NotFoundError: If the account doesn't exist
        """
        async with self._locks.hold(self._account_key(owner_id, account_id)):
            account = await self._storage.increment_balance(owner_id, account_id, amount)

        self._logger.info(
            "Balance changed",
            owner_id=owner_id,
            account_id=str(account_id),
            delta=str(amount),
            balance=str(account.balance),
        )
        return account.balance

    async def get(self, owner_id: str, account_id: UUID) -> Optional[AccountT]:
        return await self._storage.get(owner_id, account_id)

    async def find_by_name(self, owner_id: str, name: str) -> Optional[AccountT]:
        return await self._storage.find_by_name(owner_id, name)

    async def find_or_create(
        self,
        owner_id: str,
        name: str,
        opening_balance: Decimal = Decimal("0"),
    ) -> AccountT:
        """Case-insensitive lookup; creates the account when absent."""
        name = name.strip()
        async with self._locks.hold(self._name_key(owner_id, name)):
            account = await self._storage.find_by_name(owner_id, name)
            if account is not None:
                return account
            account = await self._storage.insert(
                owner_id,
                self.model_cls(owner_id=owner_id, name=name, balance=opening_balance),
            )

        self._logger.info(
            f"{self.kind.capitalize()} created",
            owner_id=owner_id,
            account_id=str(account.id),
            name=name,
        )
        return account

    async def list_accounts(self, owner_id: str) -> list[AccountT]:
        return await self._storage.list_by_owner(owner_id)


class CustomerBalanceLedger(BalanceLedger[Customer]):
    """Receivables: positive balance means the customer owes the business."""

    kind = "customer"
    model_cls = Customer

    async def list_with_balance(self, owner_id: str) -> list[Customer]:
        """Customers whose receivable is not zero."""
        return [c for c in await self.list_accounts(owner_id) if c.balance != 0]


class BankBalanceLedger(BalanceLedger[BankAccount]):

    kind = "bank"
    model_cls = BankAccount

    async def create(
        self,
        owner_id: str,
        name: str,
        opening_balance: Decimal = Decimal("0"),
    ) -> BankAccount:
        """
        Open a new bank account.

        Raises:
            DuplicateNameError: If the owner already has an account of that name
        """
        name = name.strip()
        async with self._locks.hold(self._name_key(owner_id, name)):
            if await self._storage.find_by_name(owner_id, name) is not None:
                raise DuplicateNameError(f'A bank account named "{name}" already exists.')
            account = await self._storage.insert(
                owner_id,
                BankAccount(owner_id=owner_id, name=name, balance=opening_balance),
            )

        self._logger.info(
            "Bank account created",
            owner_id=owner_id,
            account_id=str(account.id),
            name=name,
            opening_balance=str(opening_balance),
        )
        return account

    async def list_balances(self, owner_id: str) -> list[BankAccount]:
        return await self.list_accounts(owner_id)
