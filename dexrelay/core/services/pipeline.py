"""Market creation pipeline: named steps driven by a small sequential runner."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from functools import partial
from typing import Any

from eth_utils import is_address, to_checksum_address
from loguru import logger

from dexrelay.core.chain.interfaces import Ledger
from dexrelay.core.config import RelayerConfig
from dexrelay.core.exceptions import (
    PipelineCancelledError,
    RelayerError,
    ValidationError,
    get_error_handler,
)
from dexrelay.core.logging import log_context
from dexrelay.core.models.market import MarketRecord, MarketStatus
from dexrelay.core.models.pipeline import PipelineLog, PipelineStage, PipelineState, StepStatus
from dexrelay.core.models.request import CreationRequest
from dexrelay.core.monitoring import MetricsCollector, get_metrics_collector
from dexrelay.core.patterns import RetryConfig
from dexrelay.core.services.archiver import SnapshotArchiver
from dexrelay.core.services.authorizer import MetaTxAuthorizer
from dexrelay.core.services.broadcaster import BoundBroadcaster, ProgressBroadcaster
from dexrelay.core.services.events import resolve_market_created
from dexrelay.core.services.facet_cut import FacetCutBuilder, choose_cut
from dexrelay.core.services.grants import RoleGranter
from dexrelay.core.services.persistence import MarketRepository, PersistenceReconciler
from dexrelay.core.services.preflight import build_creation_call, dry_run, ensure_deployed
from dexrelay.core.services.registry import RegistryAttacher
from dexrelay.core.services.repair import SelectorRepair
from dexrelay.core.services.submitter import FeePolicy, NonceSequencer, SignerLocks, TransactionSubmitter
from dexrelay.core.validation import parse_request, validate_request

Step = Callable[[PipelineState], Awaitable[PipelineState]]

CREATE_LABEL = "create_market"

# Statuses that make a stored record count as an existing market.
_EXISTING_STATUSES = {MarketStatus.DEPLOYED, MarketStatus.SETTLEMENT_REQUESTED}


class PipelineRunner:
    """Runs steps in order, logging and broadcasting every transition.

    A step failure is converted into a :class:`RelayerError` naming the step. Once
    any on-chain identifier is known, the error also carries it as ``recovery``.
    """

    def __init__(
        self,
        broadcaster: BoundBroadcaster,
        metrics: MetricsCollector,
        cancel: asyncio.Event | None = None,
    ):
        self.log = PipelineLog()
        self.broadcaster = broadcaster
        self.metrics = metrics
        self.cancel = cancel
        self._errors = get_error_handler()

    def record(self, name: str, status: StepStatus, payload: dict[str, Any] | None = None) -> None:
        step = self.log.append(name, status, payload)
        self.broadcaster.publish(name, status.value, dict(step.payload))

    def check_cancelled(self, stage: PipelineStage) -> None:
        """Abort before ``stage`` when the caller has signalled cancellation."""
        if self.cancel is not None and self.cancel.is_set():
            error = PipelineCancelledError().at_step(stage.value)
            self.record(stage.value, StepStatus.ERROR, {"error": error.message, "code": error.error_code})
            raise error

    async def run_step(self, stage: PipelineStage, step: Step, state: PipelineState, fatal: bool = True) -> PipelineState:
        name = stage.value
        with log_context(pipeline_id=state.pipeline_id, step=name, area="market_creation"):
            logger.info("Pipeline step started", extra={"symbol": state.request.symbol})
            self.record(name, StepStatus.START)
            started = time.perf_counter()
            try:
                result = await step(state.evolve(stage=stage))
            except Exception as exc:
                self.metrics.observe_step(name, time.perf_counter() - started)
                error = self._errors.handle_exception(exc, name, pipeline_id=state.pipeline_id)
                if state.has_identifiers:
                    error.with_recovery(**state.recovery_identifiers())
                self.record(name, StepStatus.ERROR, {"error": error.message, "code": error.error_code, **error.details})
                if not fatal:
                    logger.warning("Non-fatal step failed, continuing", extra={"error_code": error.error_code})
                    return state.warn(f"{name}: {error.message}")
                if error is exc:
                    raise
                raise error from exc

            self.metrics.observe_step(name, time.perf_counter() - started)
            payload = dict(result.results.get(name, {}))
            self.record(name, StepStatus.SUCCESS, payload)
            logger.info("Pipeline step succeeded", extra={"payload": payload})
            return result


class MarketCreationService:
    """Creates markets on chain and reconciles them into the market store."""

    def __init__(
        self,
        config: RelayerConfig,
        ledger: Ledger,
        repository: MarketRepository,
        *,
        broadcaster: ProgressBroadcaster | None = None,
        metrics: MetricsCollector | None = None,
        locks: SignerLocks | None = None,
        clock: Callable[[], float] = time.time,
        retry_config: RetryConfig | None = None,
        archiver: SnapshotArchiver | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.repository = repository
        self.metrics = metrics or get_metrics_collector()
        self.broadcaster = broadcaster or ProgressBroadcaster(metrics=self.metrics)
        self.locks = locks or SignerLocks()
        self._clock = clock
        self.retry_config = retry_config
        self.archiver = archiver or SnapshotArchiver(
            enabled=config.archive.enabled,
            timeout=config.archive.timeout,
            poll_interval=config.archive.poll_interval,
            access_key=config.archive.access_key,
            secret_key=config.archive.secret_key,
            user_agent=config.archive.user_agent,
        )
        self.builder = FacetCutBuilder(config.units, config.artifacts_dir or None)
        self.fee_policy = FeePolicy.from_config(config.fees)
        self.reconciler = PersistenceReconciler(
            repository,
            clock=lambda: datetime.fromtimestamp(self._clock(), UTC),
            network=config.chain.network_name,
        )

    # Entry points

    async def create(
        self,
        request: CreationRequest | dict[str, Any],
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Run the full creation pipeline and return the response body.

        Raises:
            RelayerError: The first fatal step failure, naming the step. Failures after
                the creation transaction was accepted carry recovery identifiers.
        """
        try:
            request = parse_request(request)
        except ValidationError as exc:
            self.metrics.record_run("failed")
            exc.at_step(PipelineStage.VALIDATING.value)
            raise

        state = PipelineState(request=request, pipeline_id=request.pipeline_id)
        runner = PipelineRunner(self.broadcaster.bind(state.pipeline_id), self.metrics, cancel)
        try:
            # One trace id for every step of this run.
            with log_context(pipeline_id=state.pipeline_id):
                state = await self._run(runner, state)
        except RelayerError as exc:
            outcome = "cancelled" if isinstance(exc, PipelineCancelledError) else "failed"
            self.metrics.record_run(outcome)
            runner.record(PipelineStage.FAILED.value, StepStatus.ERROR, {"step": exc.step, "code": exc.error_code})
            raise

        if state.existing is not None:
            outcome = "existing"
        elif state.warnings:
            outcome = "partial"
        else:
            outcome = "success"
        self.metrics.record_run(outcome)
        runner.record(PipelineStage.DONE.value, StepStatus.SUCCESS, {"outcome": outcome})
        return self._response(state, runner.log)

    async def persist_only(self, symbol: str, payload: dict[str, Any]) -> MarketRecord:
        """Re-run only the persistence step for a market that already exists on chain.

        ``payload`` carries the request fields plus ``orderBookAddress``, ``marketId`` and
        optionally ``transactionHash``, ``blockNumber`` and ``gasUsed``.
        """
        order_book = payload.get("orderBookAddress") or payload.get("order_book")
        market_id = payload.get("marketId") or payload.get("market_id")
        if not order_book or not is_address(str(order_book)):
            raise ValidationError("A valid orderBookAddress is required", field="orderBookAddress").at_step("persisting")
        if not market_id:
            raise ValidationError("marketId is required", field="marketId").at_step("persisting")

        try:
            request = parse_request({**payload, "symbol": symbol})
            request = validate_request(request, now=int(self._clock()), require_future_settlement=False)
        except ValidationError as exc:
            exc.at_step("persisting")
            raise
        existing = await self.repository.get(request.symbol)
        snapshot = None if existing and existing.wayback_url else await self.archiver.archive(request.metric_url)
        record = self.reconciler.build_record(
            request,
            order_book=to_checksum_address(str(order_book)),
            market_id=str(market_id),
            chain_id=await self.ledger.chain_id(),
            tx_hash=payload.get("transactionHash"),
            block_number=payload.get("blockNumber"),
            gas_used=payload.get("gasUsed"),
            wayback_url=snapshot.url if snapshot else None,
            wayback_timestamp=snapshot.timestamp if snapshot else None,
            existing=existing,
        )
        with log_context(step="persisting", area="market_creation"):
            try:
                return await self.reconciler.persist(record)
            except RelayerError as exc:
                exc.at_step("persisting").with_recovery(**record.recovery_identifiers())
                raise

    # Runner wiring

    async def _run(self, runner: PipelineRunner, state: PipelineState) -> PipelineState:
        state = await runner.run_step(PipelineStage.VALIDATING, self._validate, state)
        state = await runner.run_step(PipelineStage.CHECKING_EXISTING, self._check_existing, state)
        if state.existing is not None:
            return await runner.run_step(PipelineStage.PERSISTING, self._persist, state)

        gasless = self._is_gasless(state.request)
        runner.check_cancelled(PipelineStage.BUILDING_CUT)
        state = await runner.run_step(PipelineStage.BUILDING_CUT, partial(self._build_cut, gasless=gasless), state)
        if gasless:
            runner.check_cancelled(PipelineStage.AUTHORIZING)
            state = await runner.run_step(PipelineStage.AUTHORIZING, self._authorize, state)

        lock = self.locks.lock_for(self.ledger.relayer_address, await self.ledger.chain_id())
        async with lock:
            runner.check_cancelled(PipelineStage.SUBMITTING_CREATION)
            submitter = await self._submitter()
            state = await runner.run_step(
                PipelineStage.SUBMITTING_CREATION, partial(self._submit_creation, submitter), state
            )
            state = await runner.run_step(PipelineStage.CONFIRMING, partial(self._confirm, submitter), state)
            state = await runner.run_step(PipelineStage.RESOLVING_EVENT, self._resolve_event, state)
            state = await runner.run_step(
                PipelineStage.REPAIRING_SELECTORS, partial(self._repair_selectors, submitter), state, fatal=False
            )
            if self.config.units.session_registry:
                state = await runner.run_step(
                    PipelineStage.ATTACHING_REGISTRY, partial(self._attach_registry, submitter), state, fatal=False
                )
            state = await runner.run_step(PipelineStage.GRANTING_ROLES, partial(self._grant_roles, submitter), state)

        return await runner.run_step(PipelineStage.PERSISTING, self._persist, state)

    def _is_gasless(self, request: CreationRequest) -> bool:
        if request.gasless is None:
            return False
        if not self.config.gasless.enabled:
            logger.warning("Gasless fields supplied but gasless creation is disabled, using direct path")
            return False
        return True

    async def _submitter(self) -> TransactionSubmitter:
        sequencer = await NonceSequencer.create(self.ledger, self.ledger.relayer_address, self.fee_policy)
        return TransactionSubmitter(
            self.ledger,
            sequencer,
            confirmation_timeout=self.config.chain.confirmation_timeout,
            metrics=self.metrics,
            retry_config=self.retry_config,
        )

    # Steps

    async def _validate(self, state: PipelineState) -> PipelineState:
        request = validate_request(state.request, now=int(self._clock()))
        relayer = self.ledger.relayer_address
        fee_recipient = request.fee_recipient or request.creator_wallet_address or relayer
        request = request.model_copy(update={"fee_recipient": fee_recipient})
        diamond_owner = self.config.gasless.diamond_owner or relayer
        return state.with_result(
            PipelineStage.VALIDATING,
            {"symbol": request.symbol, "startPriceFixedPoint": request.start_price_fixed_point},
            request=request,
            diamond_owner=diamond_owner,
        )

    async def _check_existing(self, state: PipelineState) -> PipelineState:
        existing = await self.repository.get(state.request.symbol)
        if existing is None or not existing.market_address or existing.status not in _EXISTING_STATUSES:
            return state.with_result(PipelineStage.CHECKING_EXISTING, {"existing": False})
        logger.info(
            "Market already recorded, skipping on-chain steps",
            extra={"symbol": existing.symbol, "market_address": existing.market_address},
        )
        return state.with_result(
            PipelineStage.CHECKING_EXISTING,
            {"existing": True, "orderBookAddress": existing.market_address},
            existing=existing,
            order_book=existing.market_address,
            market_id=existing.market_id,
            tx_hash=existing.deployment_transaction_hash,
        )

    async def _build_cut(self, state: PipelineState, gasless: bool) -> PipelineState:
        request = state.request
        cut = choose_cut(self.builder, request.cut, gasless=gasless)
        units = self.config.units
        addresses = {"factory": units.factory, "initializer": cut.initializer}
        addresses.update({entry.unit_name or entry.unit_address: entry.unit_address for entry in cut.entries})
        await ensure_deployed(self.ledger, addresses)

        call = build_creation_call(units.factory, request, cut, state.diamond_owner or self.ledger.relayer_address)
        payload: dict[str, Any] = {"source": cut.source, "units": cut.summary()}
        if not gasless:
            await dry_run(self.ledger, call)
            payload["dryRun"] = "ok"
        return state.with_result(PipelineStage.BUILDING_CUT, payload, cut=cut, creation_call=call)

    async def _authorize(self, state: PipelineState) -> PipelineState:
        request = state.request
        authorizer = MetaTxAuthorizer(self.ledger, self.config.units.factory, self.config.gasless, clock=self._clock)
        creator = await authorizer.authorize(request, state.cut, state.diamond_owner)
        call = build_creation_call(
            self.config.units.factory, request, state.cut, state.diamond_owner, authorization=request.gasless
        )
        await dry_run(self.ledger, call)
        return state.with_result(
            PipelineStage.AUTHORIZING,
            {"creator": creator, "nonce": request.nonce, "dryRun": "ok"},
            authorized_creator=creator,
            creation_call=call,
        )

    async def _submit_creation(self, submitter: TransactionSubmitter, state: PipelineState) -> PipelineState:
        tx_hash = await submitter.submit(state.creation_call, CREATE_LABEL)
        return state.with_result(
            PipelineStage.SUBMITTING_CREATION,
            {"transactionHash": tx_hash, "function": state.creation_call.function},
            tx_hash=tx_hash,
            submitted=True,
        )

    async def _confirm(self, submitter: TransactionSubmitter, state: PipelineState) -> PipelineState:
        receipt = await submitter.confirm(state.tx_hash, CREATE_LABEL)
        return state.with_result(
            PipelineStage.CONFIRMING,
            {"blockNumber": receipt.block_number, "gasUsed": receipt.gas_used},
            receipt=receipt,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
        )

    async def _resolve_event(self, state: PipelineState) -> PipelineState:
        created = resolve_market_created(state.receipt, self.config.units.factory)
        return state.with_result(
            PipelineStage.RESOLVING_EVENT,
            {"orderBookAddress": created.order_book, "marketId": created.market_id},
            order_book=created.order_book,
            market_id=created.market_id,
        )

    async def _repair_selectors(self, submitter: TransactionSubmitter, state: PipelineState) -> PipelineState:
        repair = SelectorRepair(self.ledger, submitter, self.config.units.placement)
        result = await repair.repair(state.order_book)
        payload = {"checked": result.checked, "missing": list(result.missing), "transactionHash": result.tx_hash}
        return state.with_result(PipelineStage.REPAIRING_SELECTORS, payload).warn(*result.warnings)

    async def _attach_registry(self, submitter: TransactionSubmitter, state: PipelineState) -> PipelineState:
        attacher = RegistryAttacher(self.ledger, submitter, self.config.units.session_registry)
        results = await attacher.attach(state.order_book)
        return state.with_result(PipelineStage.ATTACHING_REGISTRY, results)

    async def _grant_roles(self, submitter: TransactionSubmitter, state: PipelineState) -> PipelineState:
        granter = RoleGranter(self.ledger, submitter, self.config.units.core_vault)
        grants = await granter.grant_all(state.order_book)
        return state.with_result(PipelineStage.GRANTING_ROLES, grants)

    async def _persist(self, state: PipelineState) -> PipelineState:
        if state.existing is not None:
            record = state.existing
        else:
            snapshot = await self.archiver.archive(state.request.metric_url)
            record = self.reconciler.build_record(
                state.request,
                order_book=state.order_book,
                market_id=state.market_id,
                chain_id=await self.ledger.chain_id(),
                tx_hash=state.tx_hash,
                block_number=state.block_number,
                gas_used=state.gas_used,
                wayback_url=snapshot.url if snapshot else None,
                wayback_timestamp=snapshot.timestamp if snapshot else None,
            )
        stored = await self.reconciler.persist(record)
        return state.with_result(
            PipelineStage.PERSISTING,
            {"status": stored.status.value, "statusReason": stored.status_reason, "waybackUrl": stored.wayback_url},
            record=stored,
        )

    # Response

    def _response(self, state: PipelineState, log: PipelineLog) -> dict[str, Any]:
        record = state.record
        return {
            "ok": True,
            "symbol": state.request.symbol,
            "pipelineId": state.pipeline_id,
            "orderBookAddress": state.order_book,
            "marketId": state.market_id,
            "transactionHash": state.tx_hash,
            "feeRecipient": record.fee_recipient if record else state.request.fee_recipient,
            "status": record.status.value if record else None,
            "waybackUrl": record.wayback_url if record else None,
            "existing": state.existing is not None,
            "warnings": list(state.warnings),
            "steps": log.to_list(),
        }


__all__ = ["CREATE_LABEL", "MarketCreationService", "PipelineRunner", "Step"]
