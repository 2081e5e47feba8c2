"""End-to-end tests of the market creation pipeline against the in-memory ledger."""

import asyncio
import io
import json
import re
import time

import pytest
from eth_account import Account

from dexrelay.core.chain.interfaces import CallReverted
from dexrelay.core.chain.selectors import selector_for
from dexrelay.core.exceptions import (
    AdminGrantError,
    ConfigurationError,
    FatalError,
    PipelineCancelledError,
    SignatureMismatchError,
    StaticCallRevertError,
    ValidationError,
    get_error_handler,
)
from dexrelay.core.logging import configure_logging
from dexrelay.core.models.market import MarketStatus
from dexrelay.core.services.archiver import ArchiveSnapshot
from dexrelay.core.services.facet_cut import FacetCutBuilder
from dexrelay.core.services.persistence import SETTLEMENT_ELAPSED_REASON
from dexrelay.core.validation import parse_request, validate_request
from fakes import CREATOR_KEY, FORGER_KEY, FakeLedger, make_config, sign_meta_create

MARKET_ID_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")
CREATOR = Account.from_key(CREATOR_KEY).address


def _runs(metrics, outcome: str) -> float:
    return metrics.registry.get_sample_value("dexrelay_pipeline_runs_total", {"outcome": outcome}) or 0


def _succeeded_steps(result: dict) -> list[str]:
    return [step["step"] for step in result["steps"] if step["status"] == "success"]


def _gasless_payload(payload: dict, config, ledger, key: str) -> dict:
    body = {
        **payload,
        "creatorWalletAddress": CREATOR,
        "signature": "0x00",
        "nonce": 0,
        "deadline": int(time.time()) + 600,
    }
    request = validate_request(parse_request(body))
    cut = FacetCutBuilder(config.units).build()
    body["signature"] = sign_meta_create(request, cut, ledger.relayer_address, key, config.units.factory)
    return body


class TestDirectCreation:
    @pytest.mark.asyncio
    async def test_creates_grants_and_persists(self, service, ledger, repository, creation_payload, metrics):
        result = await service.create(creation_payload)

        assert result["ok"] is True
        assert result["symbol"] == "ALU-USD"
        assert result["orderBookAddress"] == ledger.order_book
        assert MARKET_ID_PATTERN.match(result["marketId"])
        assert result["status"] == "deployed"
        assert result["existing"] is False
        assert result["feeRecipient"] == ledger.relayer_address
        assert result["warnings"] == []
        assert ledger.sent_functions == ["createFuturesMarketDiamond", "grantRole", "grantRole"]
        assert ledger.sent_nonces == [0, 1, 2]
        assert await repository.count("ALU-USD") == 1
        assert _runs(metrics, "success") == 1

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, service, creation_payload):
        result = await service.create(creation_payload)

        assert _succeeded_steps(result) == [
            "validating",
            "checking_existing",
            "building_cut",
            "submitting_creation",
            "confirming",
            "resolving_event",
            "repairing_selectors",
            "granting_roles",
            "persisting",
            "done",
        ]

    @pytest.mark.asyncio
    async def test_dry_run_precedes_submission(self, service, ledger, creation_payload):
        await service.create(creation_payload)

        assert [call.function for call in ledger.static_calls] == ["createFuturesMarketDiamond"]
        assert ledger.static_calls[0] == ledger.sent[0][0]

    @pytest.mark.asyncio
    async def test_progress_is_broadcast(self, service, broadcaster, fake_redis, creation_payload):
        await service.create(creation_payload)
        await broadcaster.drain(1.0)

        channels = {channel for channel, _ in fake_redis.published}
        assert channels == {"deploy-pipe-1"}
        assert ("done", "success") in {(p["step"], p["status"]) for _, p in fake_redis.published}

    @pytest.mark.asyncio
    async def test_fee_recipient_defaults_to_creator(self, service, creation_payload):
        result = await service.create({**creation_payload, "creatorWalletAddress": CREATOR.lower()})

        assert result["feeRecipient"] == CREATOR

    @pytest.mark.asyncio
    async def test_nonce_conflict_is_retried_once(self, service, ledger, creation_payload, metrics):
        ledger.nonce_conflicts = 1

        result = await service.create(creation_payload)

        assert result["ok"]
        assert ledger.sent_nonces == [1, 2, 3]
        assert metrics.registry.get_sample_value("dexrelay_nonce_resyncs_total") == 1

    @pytest.mark.asyncio
    async def test_missing_selectors_are_repaired_before_grants(self, service, ledger, creation_payload):
        del ledger.routes[selector_for("cancelOrder(uint256)")]

        result = await service.create(creation_payload)

        assert ledger.sent_functions == ["createFuturesMarketDiamond", "diamondCut", "grantRole", "grantRole"]
        assert ledger.sent_nonces == [0, 1, 2, 3]
        assert result["warnings"] == []

    @pytest.mark.asyncio
    async def test_unsent_repair_leaves_no_nonce_gap(self, service, ledger, creation_payload, metrics):
        del ledger.routes[selector_for("cancelOrder(uint256)")]
        ledger.unbroadcast_functions.add("diamondCut")

        result = await service.create(creation_payload)

        assert result["ok"] is True
        assert result["warnings"][0].startswith("repairing_selectors:")
        assert ledger.sent_functions == ["createFuturesMarketDiamond", "grantRole", "grantRole"]
        assert ledger.sent_nonces == [0, 1, 2]
        assert _runs(metrics, "partial") == 1

    @pytest.mark.asyncio
    async def test_concurrent_runs_share_one_nonce_sequence(self, service, ledger, creation_payload):
        other = {**creation_payload, "symbol": "cu-usd", "pipelineId": "pipe-2"}

        first, second = await asyncio.gather(service.create(creation_payload), service.create(other))

        nonces = ledger.sent_nonces
        assert first["orderBookAddress"] != second["orderBookAddress"]
        assert ledger.sent_functions.count("grantRole") == 4
        assert nonces == sorted(set(nonces))
        assert nonces == list(range(6))


class TestGaslessCreation:
    @pytest.fixture()
    def gasless_config(self):
        return make_config(gasless=True)

    @pytest.fixture()
    def gasless_ledger(self, gasless_config):
        return FakeLedger(gasless_config.units)

    @pytest.mark.asyncio
    async def test_valid_signature_creates_for_creator(self, service_factory, gasless_config, gasless_ledger, creation_payload):
        service = service_factory(gasless_config, gasless_ledger)
        body = _gasless_payload(creation_payload, gasless_config, gasless_ledger, CREATOR_KEY)

        result = await service.create(body)

        assert gasless_ledger.sent_functions[0] == "metaCreateFuturesMarketDiamond"
        assert result["feeRecipient"] == CREATOR
        assert "authorizing" in _succeeded_steps(result)
        assert gasless_ledger.static_calls[0].function == "metaCreateFuturesMarketDiamond"

    @pytest.mark.asyncio
    async def test_forged_signature_sends_nothing(
        self, service_factory, gasless_config, gasless_ledger, creation_payload, repository
    ):
        service = service_factory(gasless_config, gasless_ledger)
        body = _gasless_payload(creation_payload, gasless_config, gasless_ledger, FORGER_KEY)

        with pytest.raises(SignatureMismatchError) as exc_info:
            await service.create(body)

        assert exc_info.value.step == "authorizing"
        assert gasless_ledger.sent == []
        assert gasless_ledger.attempts == []
        assert await repository.count() == 0

    @pytest.mark.asyncio
    async def test_signature_ignored_when_gasless_disabled(self, service, ledger, config, creation_payload):
        body = _gasless_payload(creation_payload, config, ledger, FORGER_KEY)

        result = await service.create(body)

        assert result["ok"]
        assert ledger.sent_functions[0] == "createFuturesMarketDiamond"


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_second_run_reuses_existing_market(self, service, ledger, repository, creation_payload, metrics):
        first = await service.create(creation_payload)
        sent_after_first = len(ledger.sent)

        second = await service.create(creation_payload)

        assert second["existing"] is True
        assert second["orderBookAddress"] == first["orderBookAddress"]
        assert second["marketId"] == first["marketId"]
        assert second["transactionHash"] == first["transactionHash"]
        assert len(ledger.sent) == sent_after_first
        assert await repository.count("ALU-USD") == 1
        assert _runs(metrics, "existing") == 1
        assert _succeeded_steps(second) == ["validating", "checking_existing", "persisting", "done"]


class ClockAdvancingLedger(FakeLedger):
    """Moves a shared clock forward whenever a receipt is awaited."""

    def __init__(self, units, clock_state: dict, step: float):
        super().__init__(units)
        self.clock_state = clock_state
        self.step = step

    async def wait_for_receipt(self, tx_hash, timeout):
        self.clock_state["now"] += self.step
        return await super().wait_for_receipt(tx_hash, timeout)


class TestSettlementElapsed:
    @pytest.mark.asyncio
    async def test_market_is_stored_as_settlement_requested(self, service_factory, config, repository, creation_payload):
        clock_state = {"now": time.time()}
        ledger = ClockAdvancingLedger(config.units, clock_state, step=120)
        service = service_factory(config, ledger, clock=lambda: clock_state["now"])
        payload = {**creation_payload, "settlementDate": int(clock_state["now"]) + 60}

        result = await service.create(payload)

        assert result["ok"]
        assert result["status"] == "settlement_requested"
        stored = await repository.get("ALU-USD")
        assert stored.status == MarketStatus.SETTLEMENT_REQUESTED
        assert stored.status_reason == SETTLEMENT_ELAPSED_REASON
        assert await repository.count() == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_validation_failure_names_the_step(self, service, ledger, creation_payload, metrics):
        with pytest.raises(ValidationError) as exc_info:
            await service.create({**creation_payload, "settlementDate": 1})

        assert exc_info.value.step == "validating"
        assert exc_info.value.field == "settlementDate"
        assert ledger.attempts == []
        assert _runs(metrics, "failed") == 1

    @pytest.mark.asyncio
    async def test_non_object_request(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create(["alu-usd"])

        assert exc_info.value.step == "validating"

    @pytest.mark.asyncio
    async def test_cancellation_before_submission(self, service, ledger, creation_payload, metrics):
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(PipelineCancelledError) as exc_info:
            await service.create(creation_payload, cancel=cancel)

        assert exc_info.value.step == "building_cut"
        assert ledger.attempts == []
        assert _runs(metrics, "cancelled") == 1

    @pytest.mark.asyncio
    async def test_static_call_revert_stops_before_submission(self, service, ledger, creation_payload):
        ledger.static_revert = CallReverted(reason="PublicCreationDisabled")

        with pytest.raises(StaticCallRevertError) as exc_info:
            await service.create(creation_payload)

        assert exc_info.value.step == "building_cut"
        assert exc_info.value.hint
        assert ledger.attempts == []

    @pytest.mark.asyncio
    async def test_missing_bytecode_is_a_configuration_error(self, service, ledger, config, creation_payload):
        ledger.empty_code.add(config.units.factory)

        with pytest.raises(ConfigurationError) as exc_info:
            await service.create(creation_payload)

        assert exc_info.value.error_code == "CONFIGURATION_ERROR"
        assert exc_info.value.step == "building_cut"

    @pytest.mark.asyncio
    async def test_missing_event_is_fatal_with_transaction_hash(self, service, ledger, creation_payload, repository):
        ledger.emit_event = False

        with pytest.raises(FatalError) as exc_info:
            await service.create(creation_payload)

        assert exc_info.value.step == "resolving_event"
        assert exc_info.value.recovery["tx_hash"] == ledger.sent[0][2]
        assert await repository.count() == 0

    @pytest.mark.asyncio
    async def test_grant_failure_carries_recovery_identifiers(self, service, ledger, creation_payload, repository):
        ledger.failing_functions.add("grantRole")

        with pytest.raises(AdminGrantError) as exc_info:
            await service.create(creation_payload)

        error = exc_info.value
        assert error.step == "granting_roles"
        assert error.recovery["order_book"] == ledger.order_book
        assert MARKET_ID_PATTERN.match(error.recovery["market_id"])
        body = get_error_handler().create_error_response(error)
        assert body["step"] == "granting_roles"
        assert body["orderBookAddress"] == ledger.order_book
        assert body["transactionHash"] == ledger.sent[0][2]
        assert await repository.count() == 0


class TestSessionRegistry:
    @pytest.fixture()
    def registry_config(self):
        return make_config(with_registry=True)

    @pytest.mark.asyncio
    async def test_registry_is_attached_before_grants(self, service_factory, registry_config, creation_payload):
        ledger = FakeLedger(registry_config.units)
        service = service_factory(registry_config, ledger)

        result = await service.create(creation_payload)

        assert ledger.sent_functions == [
            "createFuturesMarketDiamond",
            "setAllowedOrderbook",
            "setSessionRegistry",
            "grantRole",
            "grantRole",
        ]
        assert "attaching_registry" in _succeeded_steps(result)

    @pytest.mark.asyncio
    async def test_registry_failure_is_a_warning(self, service_factory, registry_config, creation_payload, metrics):
        ledger = FakeLedger(registry_config.units)
        ledger.failing_functions.add("setSessionRegistry")
        service = service_factory(registry_config, ledger)

        result = await service.create(creation_payload)

        assert result["ok"]
        assert result["status"] == "deployed"
        assert any(warning.startswith("attaching_registry") for warning in result["warnings"])
        assert _runs(metrics, "partial") == 1


class TestPersistOnly:
    @pytest.mark.asyncio
    async def test_persists_existing_on_chain_market(self, service, ledger, repository, creation_payload):
        payload = {
            **creation_payload,
            "orderBookAddress": ledger.order_book.lower(),
            "marketId": "0x" + "ef" * 32,
            "transactionHash": "0x" + "01" * 32,
        }

        record = await service.persist_only("alu-usd", payload)

        assert record.market_identifier == "ALU-USD"
        assert record.market_address == ledger.order_book
        assert record.deployment_transaction_hash == "0x" + "01" * 32
        assert await repository.count() == 1
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_requires_order_book_address(self, service, creation_payload):
        with pytest.raises(ValidationError) as exc_info:
            await service.persist_only("alu-usd", {**creation_payload, "marketId": "0x01"})

        assert exc_info.value.step == "persisting"
        assert exc_info.value.field == "orderBookAddress"


class TestRunTracing:
    @pytest.fixture()
    def log_buffer(self):
        buffer = io.StringIO()
        configure_logging("INFO", console_stream=buffer)
        yield buffer
        configure_logging()

    @pytest.mark.asyncio
    async def test_each_run_logs_under_its_own_trace_id(self, service, creation_payload, log_buffer):
        other = {**creation_payload, "symbol": "cu-usd", "pipelineId": "pipe-2"}

        await service.create(creation_payload)
        await service.create(other)

        traces: dict[str, set[str]] = {}
        for line in log_buffer.getvalue().splitlines():
            record = json.loads(line)
            if record.get("step"):
                traces.setdefault(record["pipeline_id"], set()).add(record["trace_id"])
        assert set(traces) == {creation_payload["pipelineId"], "pipe-2"}
        assert all(len(ids) == 1 for ids in traces.values())
        assert traces[creation_payload["pipelineId"]] != traces["pipe-2"]


class TestMetricArchiving:
    SNAPSHOT = ArchiveSnapshot(
        "https://web.archive.org/web/20261019120000/https://example.com/metrics/aluminium",
        "20261019120000",
    )

    @pytest.mark.asyncio
    async def test_snapshot_is_stored_and_returned(self, service, archiver, repository, creation_payload, metrics):
        archiver.snapshot = self.SNAPSHOT

        result = await service.create(creation_payload)

        assert archiver.requested == [creation_payload["metricUrl"]]
        assert result["waybackUrl"] == self.SNAPSHOT.url
        record = await repository.get("ALU-USD")
        assert record.wayback_url == self.SNAPSHOT.url
        assert record.wayback_timestamp == "20261019120000"
        assert _runs(metrics, "success") == 1

    @pytest.mark.asyncio
    async def test_missing_snapshot_does_not_fail_the_run(self, service, repository, creation_payload, metrics):
        result = await service.create(creation_payload)

        assert result["ok"] is True
        assert result["waybackUrl"] is None
        assert result["warnings"] == []
        assert (await repository.get("ALU-USD")).wayback_url is None
        assert _runs(metrics, "success") == 1

    @pytest.mark.asyncio
    async def test_existing_market_is_not_archived_again(self, service, archiver, creation_payload):
        archiver.snapshot = self.SNAPSHOT
        await service.create(creation_payload)

        second = await service.create(creation_payload)

        assert archiver.requested == [creation_payload["metricUrl"]]
        assert second["waybackUrl"] == self.SNAPSHOT.url

    @pytest.mark.asyncio
    async def test_persist_only_archives_when_no_snapshot_is_stored(self, service, archiver, ledger, creation_payload):
        archiver.snapshot = self.SNAPSHOT
        payload = {**creation_payload, "orderBookAddress": ledger.order_book, "marketId": "0x" + "ab" * 32}

        record = await service.persist_only("alu-usd", payload)
        again = await service.persist_only("alu-usd", payload)

        assert record.wayback_url == self.SNAPSHOT.url
        assert again.wayback_url == self.SNAPSHOT.url
        assert archiver.requested == [creation_payload["metricUrl"]]
