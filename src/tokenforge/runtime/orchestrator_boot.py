from __future__ import annotations

from typing import Optional

from tokenforge.config import IssuerConfig, load_config
from tokenforge.ledger.rpc import SolanaRpcClient
from tokenforge.runtime.orchestrator import IssuanceOrchestrator
from tokenforge.runtime.wallet import load_keypair_wallet
from tokenforge.storage.content_pinner import ContentPinner
from tokenforge.storage.ipfs import IpfsConfig, IpfsHttpClient


def build_orchestrator(cfg: Optional[IssuerConfig] = None) -> IssuanceOrchestrator:
    """
    Wire the production collaborators (RPC, IPFS, keypair wallet) from an
    explicit config or, if omitted, from the environment / config file.
    """
    c = cfg or load_config()

    ledger = SolanaRpcClient(
        c.rpc_url,
        timeout_s=c.rpc_timeout_s,
        commitment=c.commitment,
        poll_interval_ms=c.confirm_poll_ms,
    )
    ipfs = IpfsHttpClient(
        IpfsConfig(
            api_base=c.ipfs_api_base,
            gateway_base=c.ipfs_gateway_base,
            project_id=c.ipfs_project_id,
            project_secret=c.ipfs_project_secret,
            timeout_s=c.ipfs_timeout_s,
        )
    )
    return IssuanceOrchestrator(
        wallet=load_keypair_wallet(c.keypair_path),
        ledger=ledger,
        pinner=ContentPinner(ipfs),
        min_balance_lamports=c.min_balance_lamports,
        seller_fee_basis_points=c.seller_fee_basis_points,
        commitment=c.commitment,
        confirm_timeout_s=c.confirm_timeout_s,
    )
