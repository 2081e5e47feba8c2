"""Tests for bytecode presence checks, creation call assembly and the dry run."""

import pytest
from eth_abi import encode as abi_encode
from eth_utils import function_signature_to_4byte_selector

from dexrelay.core.chain.interfaces import CallReverted
from dexrelay.core.exceptions import ConfigurationError, StaticCallRevertError
from dexrelay.core.exceptions.messages import DEFAULT_DIRECT_HINT, DEFAULT_META_HINT, REVERT_HINTS
from dexrelay.core.models.request import CreationRequest
from dexrelay.core.services.facet_cut import FacetCutBuilder
from dexrelay.core.services.preflight import build_creation_call, dry_run, ensure_deployed
from fakes import FakeLedger, address_for, make_units


def _request(**overrides) -> CreationRequest:
    payload = {
        "symbol": "ALU-USD",
        "metricUrl": "https://example.com/alu",
        "startPriceFixedPoint": 1_000_000,
        "settlementDate": 2_000_000_000,
        "tags": ["COMMODITIES"],
    }
    payload.update(overrides)
    return CreationRequest.model_validate(payload)


def test_direct_creation_call():
    units = make_units()
    cut = FacetCutBuilder(units).build()

    call = build_creation_call(units.factory, _request(), cut, address_for(50))

    assert call.function == "createFuturesMarketDiamond"
    assert call.args[:4] == ("ALU-USD", "https://example.com/alu", 2_000_000_000, 1_000_000)
    assert call.args[6] == address_for(50)
    assert call.args[8] == units.initializer
    assert call.args[-1] == b""


def test_meta_creation_call():
    units = make_units()
    cut = FacetCutBuilder(units).build()
    request = _request(creatorWalletAddress=address_for(60), signature="0xdeadbeef", nonce=4, deadline=2_000_000)

    call = build_creation_call(units.factory, request, cut, address_for(50), authorization=request.gasless)

    assert call.function == "metaCreateFuturesMarketDiamond"
    assert call.args[9:] == (address_for(60), 4, 2_000_000, bytes.fromhex("deadbeef"))


@pytest.mark.asyncio
async def test_ensure_deployed_names_empty_addresses():
    units = make_units()
    ledger = FakeLedger(units)
    ledger.empty_code.update({units.factory, units.view})

    with pytest.raises(ConfigurationError) as exc_info:
        await ensure_deployed(ledger, {"factory": units.factory, "view": units.view, "admin": units.admin})

    assert exc_info.value.missing == ["factory", "view"]


@pytest.mark.asyncio
async def test_ensure_deployed_passes_with_code():
    units = make_units()

    await ensure_deployed(FakeLedger(units), {"factory": units.factory})


@pytest.mark.asyncio
async def test_dry_run_decodes_known_revert():
    units = make_units()
    ledger = FakeLedger(units)
    ledger.static_revert = CallReverted(data=function_signature_to_4byte_selector("MarketAlreadyExists()"))
    call = build_creation_call(units.factory, _request(), FacetCutBuilder(units).build(), address_for(50))

    with pytest.raises(StaticCallRevertError) as exc_info:
        await dry_run(ledger, call)

    assert exc_info.value.decoded_error_name == "MarketAlreadyExists"
    assert exc_info.value.hint == REVERT_HINTS["MarketAlreadyExists"]
    assert ledger.sent == []


@pytest.mark.asyncio
async def test_dry_run_unknown_revert_uses_path_hint():
    units = make_units()
    ledger = FakeLedger(units)
    ledger.static_revert = CallReverted(data=b"\x12\x34\x56\x78", reason="execution reverted")
    request = _request(creatorWalletAddress=address_for(60), signature="0x01", nonce=0, deadline=2_000_000)
    cut = FacetCutBuilder(units).build()

    with pytest.raises(StaticCallRevertError) as direct:
        await dry_run(ledger, build_creation_call(units.factory, request, cut, address_for(50)))
    with pytest.raises(StaticCallRevertError) as meta:
        await dry_run(
            ledger, build_creation_call(units.factory, request, cut, address_for(50), authorization=request.gasless)
        )

    assert direct.value.hint == DEFAULT_DIRECT_HINT
    assert meta.value.hint == DEFAULT_META_HINT
    assert direct.value.decoded_error_name is None


@pytest.mark.asyncio
async def test_dry_run_reason_string():
    units = make_units()
    ledger = FakeLedger(units)
    selector = function_signature_to_4byte_selector("Error(string)")
    ledger.static_revert = CallReverted(data=selector + abi_encode(["string"], ["symbol taken"]))
    call = build_creation_call(units.factory, _request(), FacetCutBuilder(units).build(), address_for(50))

    with pytest.raises(StaticCallRevertError, match="symbol taken"):
        await dry_run(ledger, call)
