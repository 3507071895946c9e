from __future__ import annotations

from dataclasses import dataclass

from solders.pubkey import Pubkey

from tokenforge.ledger.constants import LAMPORTS_PER_SOL
from tokenforge.ledger.rpc import LedgerClient, RpcError
from tokenforge.runtime.errors import PreconditionFailure

# Expected cost of mint creation + holding account + mint-to + metadata.
DEFAULT_MIN_BALANCE_LAMPORTS = 2 * LAMPORTS_PER_SOL // 100


@dataclass(frozen=True)
class BalanceCheck:
    balance: int
    required: int

    @property
    def sufficient(self) -> bool:
        return self.balance >= self.required

    @property
    def shortfall(self) -> int:
        return max(0, self.required - self.balance)


def check_balance(ledger: LedgerClient, issuer: Pubkey, min_lamports: int = DEFAULT_MIN_BALANCE_LAMPORTS) -> BalanceCheck:
    try:
        balance = int(ledger.get_balance(issuer))
    except RpcError as e:
        raise PreconditionFailure("balance_query_failed", str(e)) from e
    return BalanceCheck(balance=balance, required=int(min_lamports))


def require_sufficient_balance(ledger: LedgerClient, issuer: Pubkey, min_lamports: int) -> BalanceCheck:
    chk = check_balance(ledger, issuer, min_lamports)
    if not chk.sufficient:
        need_sol = chk.required / LAMPORTS_PER_SOL
        raise PreconditionFailure(
            "insufficient_balance",
            f"Insufficient SOL balance. You need at least {need_sol:g} SOL to create a token.",
            details={"balance": chk.balance, "required": chk.required, "shortfall": chk.shortfall},
        )
    return chk
