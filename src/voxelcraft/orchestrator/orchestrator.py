"""TransactionOrchestrator - multi-system sagas with typed outcomes.

Each operation is a fixed sequence: optional artifact upload, a backend
"prepare" call, the ledger call, then a backend "confirm" call. The first
failing step ends the saga and its error is reported verbatim. Side effects
of earlier steps (uploaded artifacts, granted approvals, reserved ids) are
left in place.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from voxelcraft.interfaces.artifact_store import ArtifactStore, ProgressSink
from voxelcraft.interfaces.backend import BackendClient
from voxelcraft.interfaces.ledger import LedgerGateway
from voxelcraft.ipfs.metadata import validate_metadata
from voxelcraft.models.config import COLLECTIBLE_CATEGORIES
from voxelcraft.models.errors import (
    ErrorKind,
    OperationError,
    invalid_input,
    stale_state,
    upstream_failure,
)
from voxelcraft.models.operations import (
    BatchFailure,
    BatchOfOperations,
    BatchReport,
    BuyFromMarket,
    CastVote,
    ClaimReceipt,
    ClaimReward,
    ListingReceipt,
    ListOnMarket,
    LoadWorldSnapshot,
    MintCollectible,
    MintReceipt,
    OperationKind,
    OperationSpec,
    PurchaseReceipt,
    SagaResult,
    SaveWorldSnapshot,
    StepStatus,
    TransferFungible,
    TransferReceipt,
    VoteReceipt,
    WorldLoadReceipt,
    WorldSaveReceipt,
)
from voxelcraft.models.records import SyncStatus
from voxelcraft.orchestrator.saga import Saga, StepFailed
from voxelcraft.stellar.contracts import ContractRegistry, collectible_key
from voxelcraft.stellar.validation import require_address, require_id, to_base_units
from voxelcraft.wallet.session import WalletSession

log = logging.getLogger(__name__)

VALIDATE = "validate_input"

MINT_STEPS = (VALIDATE, "upload_artifacts", "prepare_mint", "ledger_mint", "confirm_mint")
LIST_STEPS = (VALIDATE, "check_owner", "prepare_listing", "ledger_list", "confirm_listing")
BUY_STEPS = (VALIDATE, "read_listing", "prepare_buy", "ledger_buy", "confirm_buy")
TRANSFER_STEPS = (VALIDATE, "prepare_transfer", "ledger_transfer", "confirm_transfer")
CLAIM_STEPS = (VALIDATE, "read_reward", "ledger_claim", "confirm_claim")
VOTE_STEPS = (VALIDATE, "check_eligibility", "ledger_vote", "confirm_vote")
SAVE_WORLD_STEPS = (VALIDATE, "upload_snapshot", "save_world", "pin_snapshot")
LOAD_WORLD_STEPS = (VALIDATE, "read_world", "fetch_snapshot")


def _field(data: Any, key: str, step: str) -> Any:
    if not isinstance(data, dict) or data.get(key) is None:
        raise upstream_failure(f"{step}: backend response missing {key!r}")
    return data[key]


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise upstream_failure(f"backend returned non-integer {key}: {value!r}") from None


class TransactionOrchestrator:
    """Runs operation sagas across the wallet, store, ledger and backend.

    Sagas may be in flight concurrently; each one is a strictly sequential
    pipeline. Nothing is persisted here: the backend's confirm calls are
    the durable side.
    """

    def __init__(
        self,
        session: WalletSession,
        store: ArtifactStore,
        ledger: LedgerGateway,
        backend: BackendClient,
        contracts: ContractRegistry,
    ) -> None:
        self._session = session
        self._store = store
        self._ledger = ledger
        self._backend = backend
        self._contracts = contracts
        self._abandoned: set[asyncio.Task] = set()

    # -- entry points ----------------------------------------------------

    async def execute(
        self,
        spec: OperationSpec,
        cancel: asyncio.Event | None = None,
        progress: ProgressSink | None = None,
    ) -> SagaResult:
        """Run any operation spec, optionally racing it against ``cancel``.

        When ``cancel`` fires first the result is CANCELLED. The in-flight
        call (typically a signing prompt) is left to finish on its own, its
        result is discarded and no further step of that saga starts.
        """
        saga = self._new_saga(spec)
        if cancel is None:
            return await self._dispatch(saga, spec, progress)

        work = asyncio.ensure_future(self._dispatch(saga, spec, progress))
        waiter = asyncio.ensure_future(cancel.wait())
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if work in done:
            waiter.cancel()
            return work.result()

        saga.cancel()
        log.info("Saga %s (%s) cancelled by caller", saga.id[:8], saga.record.kind.value)
        self._abandoned.add(work)
        work.add_done_callback(self._discard)
        return SagaResult(
            kind=saga.record.kind, success=False, saga=saga.record, error=saga.record.error,
        )

    async def mint_collectible(
        self, spec: MintCollectible, progress: ProgressSink | None = None,
    ) -> SagaResult:
        return await self.execute(spec, progress=progress)

    async def list_on_market(self, spec: ListOnMarket) -> SagaResult:
        return await self.execute(spec)

    async def buy_from_market(self, spec: BuyFromMarket) -> SagaResult:
        return await self.execute(spec)

    async def transfer_fungible(self, spec: TransferFungible) -> SagaResult:
        return await self.execute(spec)

    async def claim_reward(self, spec: ClaimReward) -> SagaResult:
        return await self.execute(spec)

    async def cast_vote(self, spec: CastVote) -> SagaResult:
        return await self.execute(spec)

    async def save_world_snapshot(self, spec: SaveWorldSnapshot) -> SagaResult:
        return await self.execute(spec)

    async def load_world_snapshot(self, spec: LoadWorldSnapshot) -> SagaResult:
        return await self.execute(spec)

    async def run_batch(self, spec: BatchOfOperations) -> SagaResult:
        return await self.execute(spec)

    # -- status helpers --------------------------------------------------

    async def sync_status(self) -> SyncStatus:
        """Reachability of ledger, store and backend, checked concurrently."""
        latest, store_ok, backend = await asyncio.gather(
            self._ledger.latest_ledger(),
            self._store.is_available(),
            self._backend.status(),
        )
        return SyncStatus(
            ledger=latest is not None,
            store=store_ok,
            backend=backend is not None and bool(backend.get("healthy", True)),
            wallet_connected=self._session.connected,
            last_sync=backend.get("lastSync") if backend else None,
        )

    async def collectible_counts(self, address: str) -> dict[str, int]:
        """Owned collectibles per configured category (best-effort reads)."""
        require_address(address)
        counts: dict[str, int] = {}
        for category in COLLECTIBLE_CATEGORIES:
            if self._contracts.get(collectible_key(category)) is None:
                continue
            owned = await self._ledger.collectibles_owned_by(category, address)
            counts[category] = len(owned)
        return counts

    # -- saga plumbing ---------------------------------------------------

    _STEPS: dict[type, tuple[OperationKind, tuple[str, ...]]] = {
        MintCollectible: (OperationKind.MINT_COLLECTIBLE, MINT_STEPS),
        ListOnMarket: (OperationKind.LIST_ON_MARKET, LIST_STEPS),
        BuyFromMarket: (OperationKind.BUY_FROM_MARKET, BUY_STEPS),
        TransferFungible: (OperationKind.TRANSFER_FUNGIBLE, TRANSFER_STEPS),
        ClaimReward: (OperationKind.CLAIM_REWARD, CLAIM_STEPS),
        CastVote: (OperationKind.CAST_VOTE, VOTE_STEPS),
        SaveWorldSnapshot: (OperationKind.SAVE_WORLD_SNAPSHOT, SAVE_WORLD_STEPS),
        LoadWorldSnapshot: (OperationKind.LOAD_WORLD_SNAPSHOT, LOAD_WORLD_STEPS),
    }

    def _new_saga(self, spec: OperationSpec, parent: Saga | None = None) -> Saga:
        if isinstance(spec, BatchOfOperations):
            steps = [f"item_{i}" for i in range(len(spec.operations))]
            return Saga(OperationKind.BATCH, steps, parent)
        try:
            kind, steps = self._STEPS[type(spec)]
        except KeyError:
            raise TypeError(f"unsupported operation spec: {type(spec).__name__}") from None
        return Saga(kind, steps, parent)

    async def _dispatch(
        self, saga: Saga, spec: OperationSpec, progress: ProgressSink | None,
    ) -> SagaResult:
        if isinstance(spec, BatchOfOperations):
            return await self._batch(saga, spec)

        bodies: dict[type, Callable[[], Awaitable[Any]]] = {
            MintCollectible: lambda: self._mint(saga, spec, progress),
            ListOnMarket: lambda: self._list(saga, spec),
            BuyFromMarket: lambda: self._buy(saga, spec),
            TransferFungible: lambda: self._transfer(saga, spec),
            ClaimReward: lambda: self._claim(saga, spec),
            CastVote: lambda: self._vote(saga, spec),
            SaveWorldSnapshot: lambda: self._save_world(saga, spec),
            LoadWorldSnapshot: lambda: self._load_world(saga, spec),
        }
        kind = saga.record.kind
        log.info("Saga %s (%s) started", saga.id[:8], kind.value)
        try:
            receipt = await bodies[type(spec)]()
        except StepFailed as exc:
            saga.finish(exc)
            log.warning(
                "Saga %s (%s) failed at %s: %s", saga.id[:8], kind.value, exc.step, exc.error,
            )
            return SagaResult(kind=kind, success=False, saga=saga.record, error=exc.error)
        saga.finish()
        log.info("Saga %s (%s) succeeded", saga.id[:8], kind.value)
        return SagaResult(kind=kind, success=True, saga=saga.record, data=receipt)

    def _discard(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("Abandoned saga raised after cancellation: %s", exc)
        else:
            log.info("Discarded result of cancelled saga")

    def _require_wallet(self) -> str:
        return self._session.require_address()

    # -- sagas -----------------------------------------------------------

    async def _mint(
        self, saga: Saga, spec: MintCollectible, progress: ProgressSink | None,
    ) -> MintReceipt:
        async def validate() -> str:
            self._require_wallet()
            validate_metadata(spec.metadata)
            if not spec.image:
                raise invalid_input("image is empty")
            return self._contracts.collectible(spec.category)

        await saga.step(VALIDATE, validate)
        bundle = await saga.step(
            "upload_artifacts",
            lambda: self._store.upload_artifact_bundle(
                spec.image, spec.metadata, progress=progress, image_name=spec.image_name,
            ),
        )

        async def prepare() -> tuple[Any, str]:
            prepared = await self._backend.post(
                "/nft/prepare-mint",
                {
                    "nftType": spec.category,
                    "metadataUrl": bundle.metadata_url,
                    "metadata": bundle.metadata_document,
                },
                idempotency_key=saga.idempotency_key("prepare_mint"),
            )
            token_id = _field(prepared, "tokenId", "prepare-mint")
            _as_int(token_id, "tokenId")
            return token_id, str(_field(prepared, "contractAddress", "prepare-mint"))

        token_id, contract_address = await saga.step("prepare_mint", prepare)

        tx = await saga.ledger_step(
            "ledger_mint",
            lambda: self._ledger.mint_collectible(spec.category, bundle.metadata_url),
        )
        await saga.step(
            "confirm_mint",
            lambda: self._backend.post(
                "/nft/confirm-mint",
                {
                    "nftType": spec.category,
                    "tokenId": token_id,
                    "transactionHash": tx.tx_hash,
                    "contractAddress": contract_address,
                },
            ),
        )
        return MintReceipt(
            reserved_id=_as_int(token_id, "tokenId"),
            contract_address=contract_address,
            tx_hash=tx.tx_hash or "",
            metadata_url=bundle.metadata_url,
            artifact_hash=bundle.metadata_hash,
            image_hash=bundle.image_hash,
        )

    async def _list(self, saga: Saga, spec: ListOnMarket) -> ListingReceipt:
        async def validate() -> tuple[str, str]:
            me = self._require_wallet()
            nft_contract = self._contracts.collectible(spec.category)
            require_id(spec.item_id, "item id")
            to_base_units(spec.price, "price")
            if spec.duration is not None and spec.duration <= 0:
                raise invalid_input(f"duration must be positive: {spec.duration!r}")
            return me, nft_contract

        me, nft_contract = await saga.step(VALIDATE, validate)

        async def check_owner() -> str:
            owner = await self._ledger.owner_of(spec.category, spec.item_id)
            if owner is None or owner.lower() != me.lower():
                raise OperationError(
                    ErrorKind.NOT_OWNER,
                    f"{spec.category} #{spec.item_id} is not owned by the connected wallet",
                )
            return owner

        await saga.step("check_owner", check_owner)
        body: dict[str, Any] = {
            "nftContract": nft_contract,
            "tokenId": spec.item_id,
            "price": spec.price,
        }
        if spec.duration is not None:
            body["duration"] = spec.duration
        async def prepare() -> int:
            prepared = await self._backend.post(
                "/marketplace/prepare-listing",
                body,
                idempotency_key=saga.idempotency_key("prepare_listing"),
            )
            return _as_int(_field(prepared, "listingId", "prepare-listing"), "listingId")

        listing_id = await saga.step("prepare_listing", prepare)

        tx = await saga.ledger_step(
            "ledger_list",
            lambda: self._ledger.list_on_market(nft_contract, spec.item_id, spec.price),
        )
        await saga.step(
            "confirm_listing",
            lambda: self._backend.post(
                "/marketplace/confirm-listing",
                {"listingId": listing_id, "transactionHash": tx.tx_hash},
            ),
        )
        return ListingReceipt(
            listing_id=listing_id,
            tx_hash=tx.tx_hash or "",
            item_id=spec.item_id,
            price=spec.price,
        )

    async def _buy(self, saga: Saga, spec: BuyFromMarket) -> PurchaseReceipt:
        async def validate() -> str:
            buyer = self._require_wallet()
            require_id(spec.listing_id, "listing id")
            return buyer

        buyer = await saga.step(VALIDATE, validate)

        async def read_listing() -> tuple[dict, int, str, int]:
            listing = await self._backend.get(f"/marketplace/listings/{spec.listing_id}")
            if not isinstance(listing, dict):
                raise upstream_failure("listing read returned no data")
            if not listing.get("active"):
                raise stale_state(f"listing #{spec.listing_id} is not active")
            on_chain_id = _as_int(
                listing.get("onChainListingId", spec.listing_id), "onChainListingId",
            )
            price = str(_field(listing, "price", "listing read"))
            item_id = _as_int(listing.get("tokenId", 0), "tokenId")
            return listing, on_chain_id, price, item_id

        listing, on_chain_id, price, item_id = await saga.step("read_listing", read_listing)
        await saga.step(
            "prepare_buy",
            lambda: self._backend.post(
                "/marketplace/prepare-buy",
                {"listingId": spec.listing_id},
                idempotency_key=saga.idempotency_key("prepare_buy"),
            ),
        )
        tx = await saga.ledger_step(
            "ledger_buy", lambda: self._ledger.buy_from_market(on_chain_id, price),
        )
        await saga.step(
            "confirm_buy",
            lambda: self._backend.post(
                "/marketplace/confirm-buy",
                {
                    "listingId": spec.listing_id,
                    "transactionHash": tx.tx_hash,
                    "buyer": buyer,
                },
            ),
        )
        return PurchaseReceipt(
            listing_id=spec.listing_id,
            tx_hash=tx.tx_hash or "",
            nft_contract=str(listing.get("nftContract", "")),
            item_id=item_id,
            buyer=buyer,
        )

    async def _transfer(self, saga: Saga, spec: TransferFungible) -> TransferReceipt:
        async def validate() -> None:
            self._require_wallet()
            self._contracts.token(spec.asset)
            require_address(spec.to)
            to_base_units(spec.amount)

        await saga.step(VALIDATE, validate)
        async def prepare() -> Any:
            prepared = await self._backend.post(
                "/tokens/prepare-transfer",
                {"tokenType": spec.asset.upper(), "to": spec.to, "amount": spec.amount},
                idempotency_key=saga.idempotency_key("prepare_transfer"),
            )
            return _field(prepared, "transferId", "prepare-transfer")

        transfer_id = await saga.step("prepare_transfer", prepare)

        tx = await saga.ledger_step(
            "ledger_transfer",
            lambda: self._ledger.transfer_fungible(spec.asset, spec.to, spec.amount),
        )
        await saga.step(
            "confirm_transfer",
            lambda: self._backend.post(
                "/tokens/confirm-transfer",
                {"transferId": transfer_id, "transactionHash": tx.tx_hash},
            ),
        )
        return TransferReceipt(
            transfer_id=str(transfer_id),
            tx_hash=tx.tx_hash or "",
            asset=spec.asset.upper(),
            to=spec.to,
            amount=spec.amount,
        )

    async def _claim(self, saga: Saga, spec: ClaimReward) -> ClaimReceipt:
        async def validate() -> None:
            self._require_wallet()
            require_id(spec.reward_id, "reward id")

        await saga.step(VALIDATE, validate)

        async def read_reward() -> dict:
            reward = await self._backend.get(f"/rewards/{spec.reward_id}")
            if not isinstance(reward, dict) or not reward.get("claimable"):
                raise stale_state(f"reward #{spec.reward_id} is not claimable")
            return reward

        reward = await saga.step("read_reward", read_reward)
        tx = await saga.ledger_step(
            "ledger_claim", lambda: self._ledger.claim_reward(spec.reward_id),
        )
        await saga.step(
            "confirm_claim",
            lambda: self._backend.post(
                "/rewards/confirm-claim",
                {"rewardId": spec.reward_id, "transactionHash": tx.tx_hash},
            ),
        )
        amount = reward.get("amount")
        reward_type = reward.get("type")
        return ClaimReceipt(
            reward_id=spec.reward_id,
            tx_hash=tx.tx_hash or "",
            amount=str(amount) if amount is not None else None,
            reward_type=str(reward_type) if reward_type is not None else None,
        )

    async def _vote(self, saga: Saga, spec: CastVote) -> VoteReceipt:
        async def validate() -> None:
            self._require_wallet()
            require_id(spec.proposal_id, "proposal id")

        await saga.step(VALIDATE, validate)

        async def check_eligibility() -> None:
            result = await self._backend.post(
                "/dao/check-vote-eligibility", {"proposalId": spec.proposal_id},
            )
            if not isinstance(result, dict) or not result.get("eligible"):
                raise stale_state(f"not eligible to vote on proposal #{spec.proposal_id}")

        await saga.step("check_eligibility", check_eligibility)
        tx = await saga.ledger_step(
            "ledger_vote", lambda: self._ledger.cast_vote(spec.proposal_id, spec.support),
        )
        await saga.step(
            "confirm_vote",
            lambda: self._backend.post(
                "/dao/confirm-vote",
                {
                    "proposalId": spec.proposal_id,
                    "transactionHash": tx.tx_hash,
                    "support": spec.support,
                },
            ),
        )
        return VoteReceipt(
            proposal_id=spec.proposal_id, tx_hash=tx.tx_hash or "", support=spec.support,
        )

    async def _save_world(self, saga: Saga, spec: SaveWorldSnapshot) -> WorldSaveReceipt:
        async def validate() -> None:
            if not spec.world_id or not str(spec.world_id).strip():
                raise invalid_input("world id is required")
            try:
                json.dumps(spec.snapshot)
            except (TypeError, ValueError) as exc:
                raise invalid_input(f"snapshot is not JSON-serializable: {exc}") from None

        await saga.step(VALIDATE, validate)
        artifact = await saga.step(
            "upload_snapshot",
            lambda: self._store.upload_json(spec.snapshot, name=f"world-{spec.world_id}.json"),
        )
        saved = await saga.step(
            "save_world",
            lambda: self._backend.post(
                "/game/save-world",
                {
                    "worldId": spec.world_id,
                    "worldData": spec.snapshot,
                    "ipfsHash": artifact.hash,
                    "ipfsUrl": artifact.url,
                },
                idempotency_key=saga.idempotency_key("save_world"),
            ),
        )

        # Pin failure is recorded on the step, never propagated
        pinned = False
        if not saga.cancelled:
            try:
                pinned = await self._store.pin(artifact.hash)
            except Exception as exc:
                log.warning("Pin of world snapshot %s raised: %s", artifact.hash[:16], exc)
            if pinned:
                saga.record.step("pin_snapshot").status = StepStatus.SUCCEEDED
            else:
                saga.best_effort_failed(
                    "pin_snapshot", upstream_failure(f"could not pin {artifact.hash}"),
                )

        backend_id = saved.get("id") if isinstance(saved, dict) else None
        return WorldSaveReceipt(
            world_id=spec.world_id,
            content_hash=artifact.hash,
            content_url=artifact.url,
            backend_id=str(backend_id) if backend_id is not None else None,
            pinned=pinned,
        )

    async def _load_world(self, saga: Saga, spec: LoadWorldSnapshot) -> WorldLoadReceipt:
        async def validate() -> None:
            if not spec.world_id or not str(spec.world_id).strip():
                raise invalid_input("world id is required")

        await saga.step(VALIDATE, validate)

        async def read_world() -> dict:
            record = await self._backend.get(f"/game/world/{spec.world_id}")
            if not isinstance(record, dict):
                raise stale_state(f"world {spec.world_id!r} not found")
            return record

        record = await saga.step("read_world", read_world)
        content_hash = record.get("ipfsHash")
        embedded = record.get("worldData")

        if not content_hash:
            if embedded is None:
                await saga.step(
                    "fetch_snapshot",
                    self._raise(stale_state(f"world {spec.world_id!r} has no stored snapshot")),
                )
            return WorldLoadReceipt(
                world_id=spec.world_id, snapshot=embedded, record=record, loaded_from_store=False,
            )

        async def fetch() -> Any:
            return await self._store.fetch_json(content_hash)

        if embedded is None:
            snapshot = await saga.step("fetch_snapshot", fetch)
            return WorldLoadReceipt(
                world_id=spec.world_id, snapshot=snapshot, record=record, loaded_from_store=True,
            )

        # An embedded copy exists, so a store failure falls back to it
        saga.ensure_active("fetch_snapshot")
        try:
            snapshot = await fetch()
        except OperationError as exc:
            saga.ensure_active("fetch_snapshot")
            saga.best_effort_failed("fetch_snapshot", exc)
            log.info("World %s loaded from embedded backend copy", spec.world_id)
            return WorldLoadReceipt(
                world_id=spec.world_id, snapshot=embedded, record=record, loaded_from_store=False,
            )
        saga.ensure_active("fetch_snapshot")
        saga.record.step("fetch_snapshot").status = StepStatus.SUCCEEDED
        return WorldLoadReceipt(
            world_id=spec.world_id, snapshot=snapshot, record=record, loaded_from_store=True,
        )

    async def _batch(self, saga: Saga, spec: BatchOfOperations) -> SagaResult:
        """Run items one after another; one failure does not stop the rest.

        Sequential on purpose: every item may need the single wallet session
        to sign.
        """
        report = BatchReport()
        log.info("Batch %s started (%d operations)", saga.id[:8], len(spec.operations))
        for index, item in enumerate(spec.operations):
            step = saga.record.steps[index]
            if saga.cancelled:
                break
            try:
                result = await self._dispatch(self._new_saga(item, saga), item, None)
            except TypeError as exc:
                error = invalid_input(str(exc))
                report.failures.append(BatchFailure(index, item, None, error))
                step.status, step.error = StepStatus.FAILED, error
                continue
            report.results.append(result)
            if saga.cancelled:
                step.status, step.error = StepStatus.FAILED, result.error
                break
            if result.success:
                step.status = StepStatus.SUCCEEDED
                continue
            error = result.error or upstream_failure("operation failed")
            step.status, step.error = StepStatus.FAILED, error
            report.failures.append(BatchFailure(index, item, result.failed_step, error))

        success = not report.failures
        if success:
            saga.finish()
        else:
            first = report.failures[0]
            saga.finish(StepFailed(f"item_{first.index}", first.error))
        log.info(
            "Batch %s finished: %d ok, %d failed",
            saga.id[:8], len(report.successes()), len(report.failures),
        )
        return SagaResult(
            kind=OperationKind.BATCH,
            success=success,
            saga=saga.record,
            data=report,
            error=None if success else report.failures[0].error,
        )

    @staticmethod
    def _raise(error: OperationError) -> Callable[[], Awaitable[Any]]:
        async def _fail() -> Any:
            raise error

        return _fail
