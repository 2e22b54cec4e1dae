"""
wordplay.api.routes.streak_freeze — Streak-freeze ledger endpoints
====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from wordplay.api.deps import (
    get_chain,
    get_config,
    get_current_admin,
    get_current_user,
    get_engine,
    get_wallets,
)
from wordplay.config import WordplayConfig
from wordplay.engine.games import UserKey
from wordplay.services import freeze_service
from wordplay.services.chain import ChainVerifier
from wordplay.services.wallets import WalletResolver

router = APIRouter(prefix="/streak-freeze", tags=["streak-freeze"])


class ClaimIn(BaseModel):
    mint_id: int
    claim_tx_hash: str
    wallet: str | None = None


class PurchaseIn(BaseModel):
    tx_hash: str
    wallet: str | None = None


class ApplyIn(BaseModel):
    game_keys: list[str] = Field(min_length=1)
    burn_tx_hash: str
    wallet: str | None = None


@router.get("")
def get_overview(
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: WordplayConfig = Depends(get_config),
    chain: ChainVerifier = Depends(get_chain),
    wallets: WalletResolver = Depends(get_wallets),
):
    """Balance, applied days, unclaimed earned freezes and fixable gaps."""
    return freeze_service.overview(
        engine, user, chain=chain, wallets=wallets,
        max_consecutive=cfg.freeze_max_consecutive,
    )


@router.post("/claim")
def claim_freeze(
    body: ClaimIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    mint = freeze_service.claim(engine, user, body.mint_id, body.claim_tx_hash, wallet=body.wallet)
    return {
        "id": mint.id,
        "claimTxHash": mint.claim_tx_hash,
        "claimedAt": mint.claimed_at.isoformat() if mint.claimed_at else None,
    }


@router.post("/purchase")
def purchase_freeze(
    body: PurchaseIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    chain: ChainVerifier = Depends(get_chain),
    wallets: WalletResolver = Depends(get_wallets),
):
    mint = freeze_service.purchase(
        engine, user, body.tx_hash, chain=chain, wallets=wallets, wallet=body.wallet
    )
    return {"id": mint.id, "purchaseTxRef": mint.purchase_tx_ref, "wallet": mint.wallet_address}


@router.post("/apply")
def apply_freeze(
    body: ApplyIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: WordplayConfig = Depends(get_config),
    chain: ChainVerifier = Depends(get_chain),
    wallets: WalletResolver = Depends(get_wallets),
):
    rows = freeze_service.apply(
        engine, user, body.game_keys, body.burn_tx_hash,
        chain=chain, wallets=wallets, wallet=body.wallet,
        max_consecutive=cfg.freeze_max_consecutive,
    )
    return {"applied": [r.applied_to_game_key for r in rows]}


@router.post("/backfill")
def backfill(
    dry_run: bool = Query(False),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    cfg: WordplayConfig = Depends(get_config),
):
    """Grant historical streak milestones that were never recorded."""
    return freeze_service.backfill_earned(
        engine, interval=cfg.freeze_earn_interval, dry_run=dry_run
    )
