"""
wordplay.services.freeze_service — Streak-Freeze Ledger
========================================================

Local records are an audit and claim trail; the spendable balance always
comes from the chain (:meth:`ChainVerifier.get_balance`).

Lifecycle of a token:

1. **Earn** — every ``freeze_earn_interval`` wins in a streak grants an
   EARNED mint record with a claim nonce (and a signature when a signer is
   configured).  Check-then-insert, and the unique constraint on
   ``(user, earned_at_game_key)`` settles concurrent earners.
2. **Claim** — once the player's on-chain mint confirms, the record is
   marked claimed with the mint tx hash.
3. **Purchase** — a verified purchase tx inserts a PURCHASED record.
4. **Apply** — a verified burn tx covers one or more missed days.  Checks,
   in order: not already applied, burn verified (and not over-spent),
   consecutive-use limit.  The reads behind those checks and the insert
   are one compare-and-write on the player's ``streak_freeze_ledgers``
   row, so concurrent applies for different days cannot jointly over-spend
   a burn or exceed the limit; the unique constraint on
   ``(user, applied_to_game_key)`` still rejects a day applied twice.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wordplay.constants import (
    FREEZE_EARN_INTERVAL,
    FREEZE_MAX_CONSECUTIVE,
    add_days,
    is_daily_key,
    today_key,
)
from wordplay.database.models import (
    FreezeSource,
    Game,
    GameStatus,
    StreakFreezeApplied,
    StreakFreezeLedger,
    StreakFreezeMint,
)
from wordplay.engine.games import UserKey
from wordplay.engine.streaks import (
    find_streak_gaps,
    frozen_run_length,
    group_streaks,
    streak_milestones,
)
from wordplay.exceptions import ConflictError, ExternalServiceError, FreezeRejectedError, NotFoundError
from wordplay.services.chain import ChainVerifier
from wordplay.services.streak_service import frozen_days, won_days
from wordplay.services.wallets import WalletResolver

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class ClaimSigner(Protocol):
    """Signs a claim nonce so the contract accepts the player's mint call."""

    def sign(self, nonce: str) -> str: ...


def claim_nonce(user: UserKey, game_key: str, streak_length: int) -> str:
    raw = f"{user.identity_provider}:{user.user_id}:{game_key}:{streak_length}"
    return "0x" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _user_filter(model, user: UserKey):
    return (model.user_id == user.user_id, model.identity_provider == user.identity_provider)


# ---------------------------------------------------------------------------
# Earn
# ---------------------------------------------------------------------------
def has_earned_for_streak(
    session: Session, user: UserKey, streak_length: int, game_key: str
) -> bool:
    """True if this streak already earned at *streak_length*.

    A record counts when it has the same length and was earned no earlier
    than the streak could have started (``game_key − streak_length`` days).
    """
    row = session.scalar(
        select(StreakFreezeMint.id).where(
            *_user_filter(StreakFreezeMint, user),
            StreakFreezeMint.source == FreezeSource.EARNED.value,
            StreakFreezeMint.earned_at_streak_length == streak_length,
            StreakFreezeMint.earned_at_game_key >= add_days(game_key, -streak_length),
        )
    )
    return row is not None


def earn(
    engine: Engine,
    user: UserKey,
    *,
    streak_length: int,
    game_key: str,
    signer: ClaimSigner | None = None,
) -> StreakFreezeMint | None:
    """Grant an earned freeze.  Returns ``None`` if it was already granted."""
    nonce = claim_nonce(user, game_key, streak_length)
    with Session(engine, expire_on_commit=False) as session:
        if has_earned_for_streak(session, user, streak_length, game_key):
            return None
        mint = StreakFreezeMint(
            user_id=user.user_id,
            identity_provider=user.identity_provider,
            source=FreezeSource.EARNED.value,
            earned_at_streak_length=streak_length,
            earned_at_game_key=game_key,
            claim_nonce=nonce,
            claim_signature=signer.sign(nonce) if signer is not None else None,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(mint)
                session.flush()
        except IntegrityError:
            logger.info("Freeze for %s at %s already earned concurrently", user, game_key)
            session.commit()
            return None
        session.commit()
        session.expunge(mint)
    logger.info(
        "Freeze earned by %s: streak %d on %s (mint %s)",
        user, streak_length, game_key, mint.id,
    )
    return mint


def earn_for_streak(
    engine: Engine,
    user: UserKey,
    game_key: str,
    *,
    interval: int = FREEZE_EARN_INTERVAL,
    signer: ClaimSigner | None = None,
) -> StreakFreezeMint | None:
    """Called after a daily win: earn if the streak just hit a milestone."""
    with Session(engine) as session:
        groups = group_streaks(
            won_days(session, user, until=game_key), frozen_days(session, user), until=game_key
        )
    if not groups or groups[-1].end != game_key:
        return None
    length = groups[-1].length
    if length == 0 or length % interval != 0:
        return None
    return earn(engine, user, streak_length=length, game_key=game_key, signer=signer)


def backfill_earned(
    engine: Engine,
    *,
    interval: int = FREEZE_EARN_INTERVAL,
    dry_run: bool = False,
    signer: ClaimSigner | None = None,
) -> dict:
    """Grant every historical milestone not yet recorded.

    Returns:
        ``{"users_scanned": N, "milestones_found": M, "granted": G,
        "skipped_existing": S, "dry_run": bool, "timestamp": iso}``
    """
    with Session(engine) as session:
        users = [
            UserKey(uid, idp)
            for uid, idp in session.execute(
                select(Game.user_id, Game.identity_provider)
                .where(Game.is_daily.is_(True), Game.status == GameStatus.WON.value)
                .distinct()
            )
        ]

    found = granted = skipped = 0
    for user in users:
        with Session(engine) as session:
            milestones = streak_milestones(
                won_days(session, user), frozen_days(session, user), interval=interval
            )
            pending = []
            for m in milestones:
                if has_earned_for_streak(session, user, m.streak_length, m.game_key):
                    skipped += 1
                else:
                    pending.append(m)
        found += len(milestones)
        if dry_run:
            granted += len(pending)
            continue
        for m in pending:
            if earn(engine, user, streak_length=m.streak_length, game_key=m.game_key, signer=signer):
                granted += 1
            else:
                skipped += 1

    logger.info(
        "Freeze backfill: %d users, %d milestones, %d granted, %d skipped%s",
        len(users), found, granted, skipped, " (dry run)" if dry_run else "",
    )
    return {
        "users_scanned": len(users),
        "milestones_found": found,
        "granted": granted,
        "skipped_existing": skipped,
        "dry_run": dry_run,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def pending_claims(engine: Engine, user: UserKey) -> list[StreakFreezeMint]:
    with Session(engine) as session:
        rows = session.scalars(
            select(StreakFreezeMint)
            .where(
                *_user_filter(StreakFreezeMint, user),
                StreakFreezeMint.source == FreezeSource.EARNED.value,
                StreakFreezeMint.claimed_at.is_(None),
            )
            .order_by(StreakFreezeMint.id)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


# ---------------------------------------------------------------------------
# Claim / purchase
# ---------------------------------------------------------------------------
def claim(
    engine: Engine,
    user: UserKey,
    mint_id: int,
    claim_tx_hash: str,
    *,
    wallet: str | None = None,
) -> StreakFreezeMint:
    """Mark an earned freeze as minted on-chain."""
    if not mint_id or not claim_tx_hash:
        raise FreezeRejectedError("mint id and claim tx hash are required", code="missing_fields")

    with Session(engine, expire_on_commit=False) as session:
        mint = session.get(StreakFreezeMint, mint_id)
        if (
            mint is None
            or mint.user_id != user.user_id
            or mint.identity_provider != user.identity_provider
            or mint.source != FreezeSource.EARNED
        ):
            raise NotFoundError(f"Freeze mint {mint_id} not found")
        if mint.claimed_at is not None:
            raise FreezeRejectedError(f"Freeze mint {mint_id} already claimed", code="already_claimed")

        result = session.execute(
            update(StreakFreezeMint)
            .where(StreakFreezeMint.id == mint_id, StreakFreezeMint.claimed_at.is_(None))
            .values(
                claim_tx_hash=claim_tx_hash,
                claimed_at=datetime.now(UTC),
                wallet_address=wallet.lower() if wallet else mint.wallet_address,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise FreezeRejectedError(f"Freeze mint {mint_id} already claimed", code="already_claimed")
        session.commit()
        session.refresh(mint)
        session.expunge(mint)
    logger.info("Freeze mint %d claimed by %s (tx %s)", mint_id, user, claim_tx_hash)
    return mint


def _resolve_wallet(wallets: WalletResolver, user: UserKey, wallet: str | None) -> str:
    addresses = wallets.addresses_for_user(user.user_id)
    if not addresses:
        raise FreezeRejectedError("No verified wallet for this player", code="no_wallet")
    if wallet is None:
        return addresses[0]
    if wallet.lower() not in addresses:
        raise FreezeRejectedError("Wallet is not verified for this player", code="unknown_wallet")
    return wallet.lower()


def purchase(
    engine: Engine,
    user: UserKey,
    tx_hash: str,
    *,
    chain: ChainVerifier,
    wallets: WalletResolver,
    wallet: str | None = None,
) -> StreakFreezeMint:
    """Record a purchased freeze after verifying *tx_hash* on-chain."""
    address = _resolve_wallet(wallets, user, wallet)
    if not chain.verify_purchase_tx(tx_hash, address):
        raise FreezeRejectedError("Purchase transaction could not be verified", code="purchase_not_verified")

    with Session(engine, expire_on_commit=False) as session:
        mint = StreakFreezeMint(
            user_id=user.user_id,
            identity_provider=user.identity_provider,
            source=FreezeSource.PURCHASED.value,
            purchase_tx_ref=tx_hash,
            wallet_address=address,
            claimed_at=datetime.now(UTC),
        )
        session.add(mint)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise FreezeRejectedError(
                "Purchase transaction already recorded", code="already_recorded"
            ) from None
        session.expunge(mint)
    logger.info("Freeze purchased by %s (tx %s)", user, tx_hash)
    return mint


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------
def _ledger_version(session: Session, user: UserKey) -> int | None:
    return session.scalar(
        select(StreakFreezeLedger.version).where(
            StreakFreezeLedger.user_id == user.user_id,
            StreakFreezeLedger.identity_provider == user.identity_provider,
        )
    )


def _bump_ledger(session: Session, user: UserKey, seen: int | None) -> bool:
    """Compare-and-write on the player's ledger row; False on a lost race.

    *seen* is ``None`` for a player who never applied a freeze: the row is
    created, and a concurrent creator surfaces as an ``IntegrityError``.
    """
    if seen is None:
        session.add(StreakFreezeLedger(
            user_id=user.user_id, identity_provider=user.identity_provider, version=1,
        ))
        try:
            session.flush()
        except IntegrityError:
            return False
        return True
    result = session.execute(
        update(StreakFreezeLedger)
        .where(
            StreakFreezeLedger.user_id == user.user_id,
            StreakFreezeLedger.identity_provider == user.identity_provider,
            StreakFreezeLedger.version == seen,
        )
        .values(version=seen + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def apply(
    engine: Engine,
    user: UserKey,
    game_keys: Sequence[str],
    burn_tx_hash: str,
    *,
    chain: ChainVerifier,
    wallets: WalletResolver,
    wallet: str | None = None,
    max_consecutive: int = FREEZE_MAX_CONSECUTIVE,
    reference: str | None = None,
) -> list[StreakFreezeApplied]:
    """Cover the missed daily *game_keys* with the tokens burned in *burn_tx_hash*.

    Raises
    ------
    FreezeRejectedError
        ``already_applied``, ``burn_not_verified``, ``burn_exhausted``,
        ``consecutive_limit`` and input errors.  Nothing is written.
    ConflictError
        A concurrent request applied one of the days first, or the ledger
        kept changing under us.
    ExternalServiceError
        The chain or wallet resolver could not be reached.
    """
    keys = sorted(set(game_keys))
    if not keys or not burn_tx_hash:
        raise FreezeRejectedError("game keys and burn tx hash are required", code="missing_fields")
    reference = reference or today_key()
    for key in keys:
        if not is_daily_key(key):
            raise FreezeRejectedError(f"{key!r} is not a daily game key", code="invalid_game_key")
        if key >= reference:
            raise FreezeRejectedError(f"{key} has not been missed yet", code="not_missed")

    address: str | None = None
    burned = 0
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        with Session(engine) as session:
            seen = _ledger_version(session, user)
            applied = set(frozen_days(session, user))
            won = set(won_days(session, user))
            used_by_tx = session.scalar(
                select(func.count(StreakFreezeApplied.id)).where(
                    StreakFreezeApplied.burn_tx_hash == burn_tx_hash
                )
            ) or 0

        # (a) already applied
        duplicates = [k for k in keys if k in applied]
        if duplicates:
            raise FreezeRejectedError(
                f"Freeze already applied to {', '.join(duplicates)}",
                code="already_applied",
                details={"game_keys": duplicates},
            )
        won_keys = [k for k in keys if k in won]
        if won_keys:
            raise FreezeRejectedError(
                f"{', '.join(won_keys)} already won", code="not_missed",
                details={"game_keys": won_keys},
            )

        # (b) burn verified and not over-spent
        if address is None:
            address = _resolve_wallet(wallets, user, wallet)
            burned = chain.burned_amount(burn_tx_hash, address)
        if burned <= 0:
            raise FreezeRejectedError("Burn transaction could not be verified", code="burn_not_verified")
        if used_by_tx + len(keys) > burned:
            raise FreezeRejectedError(
                f"Burn transaction covers {burned} freeze(s), {used_by_tx} already used",
                code="burn_exhausted",
                details={"burned": burned, "used": used_by_tx},
            )

        # (c) consecutive-use limit, counting the days of this call as applied
        frozen = set(applied)
        for key in keys:
            if frozen_run_length(key, frozen) > max_consecutive:
                raise FreezeRejectedError(
                    f"Freezes can cover at most {max_consecutive} consecutive days",
                    code="consecutive_limit",
                    details={"game_key": key},
                )
            frozen.add(key)

        rows = [
            StreakFreezeApplied(
                user_id=user.user_id,
                identity_provider=user.identity_provider,
                applied_to_game_key=key,
                burn_tx_hash=burn_tx_hash,
                wallet_address=address,
            )
            for key in keys
        ]
        with Session(engine, expire_on_commit=False) as session:
            if not _bump_ledger(session, user, seen):
                session.rollback()
                logger.warning(
                    "Freeze ledger for %s changed during apply (attempt %d/%d)",
                    user, attempt, MAX_WRITE_ATTEMPTS,
                )
                continue
            session.add_all(rows)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.warning("Concurrent freeze application for %s on %s", user, keys)
                raise ConflictError(
                    "Freeze was applied concurrently; reload and retry",
                    details={"game_keys": keys},
                ) from None
            for r in rows:
                session.expunge(r)

        logger.info("Applied %d freeze(s) for %s: %s (burn %s)", len(rows), user, keys, burn_tx_hash)
        return rows

    raise ConflictError(f"Freeze ledger for {user} kept changing; retry the apply")


# ---------------------------------------------------------------------------
# Balance / overview
# ---------------------------------------------------------------------------
def balance(user: UserKey, *, chain: ChainVerifier, wallets: WalletResolver) -> int:
    """Live on-chain balance of the player's first wallet; 0 when unknown."""
    try:
        addresses = wallets.addresses_for_user(user.user_id)
        if not addresses:
            return 0
        return chain.get_balance(addresses[0])
    except ExternalServiceError as exc:
        logger.warning("Balance lookup for %s failed, reporting 0: %s", user, exc)
        return 0


def applied_for_user(engine: Engine, user: UserKey) -> list[StreakFreezeApplied]:
    with Session(engine) as session:
        rows = session.scalars(
            select(StreakFreezeApplied)
            .where(*_user_filter(StreakFreezeApplied, user))
            .order_by(StreakFreezeApplied.applied_to_game_key)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def overview(
    engine: Engine,
    user: UserKey,
    *,
    chain: ChainVerifier,
    wallets: WalletResolver,
    max_consecutive: int = FREEZE_MAX_CONSECUTIVE,
    reference: str | None = None,
) -> dict[str, Any]:
    reference = reference or today_key()
    with Session(engine) as session:
        gaps = find_streak_gaps(
            won_days(session, user), frozen_days(session, user), reference,
            max_gap=max_consecutive,
        )
    return {
        "balance": balance(user, chain=chain, wallets=wallets),
        "applied": [
            {"gameKey": a.applied_to_game_key, "burnTxHash": a.burn_tx_hash}
            for a in applied_for_user(engine, user)
        ],
        "pendingClaims": [
            {
                "id": m.id,
                "streakLength": m.earned_at_streak_length,
                "gameKey": m.earned_at_game_key,
                "nonce": m.claim_nonce,
                "signature": m.claim_signature,
            }
            for m in pending_claims(engine, user)
        ],
        "gaps": gaps,
    }
