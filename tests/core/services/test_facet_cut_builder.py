"""Tests for facet cut construction and client cut handling."""

import json

import pytest

from dexrelay.core.chain.abis import FACET_FALLBACK_SIGNATURES, UNIT_CONTRACTS
from dexrelay.core.chain.selectors import selector_for
from dexrelay.core.exceptions import BuildError, ConfigurationError
from dexrelay.core.models.cut import FacetCutAction
from dexrelay.core.services.facet_cut import FacetCutBuilder, choose_cut, parse_client_cut
from fakes import address_for, make_units


def _write_artifact(root, contract: str, abi) -> None:
    folder = root / f"{contract}.sol"
    folder.mkdir(parents=True, exist_ok=True)
    (folder / f"{contract}.json").write_text(json.dumps({"abi": abi}), encoding="utf-8")


class TestFacetCutBuilder:
    def test_fallback_build_covers_every_unit_in_order(self):
        cut = FacetCutBuilder(make_units()).build()

        assert [entry.unit_name for entry in cut.entries] == list(UNIT_CONTRACTS)
        assert cut.source == "built"
        assert cut.initializer == make_units().initializer
        assert cut.unit_addresses[0] == make_units().admin
        assert set(cut.unit_sources.values()) == {"fallback"}
        for entry in cut.entries:
            assert entry.action == FacetCutAction.ADD
            assert len(entry.selectors) == len(set(entry.selectors))

    def test_artifact_abi_overrides_fallback(self, tmp_path):
        _write_artifact(
            tmp_path,
            "OBPricingFacet",
            [
                {"type": "function", "name": "bestBid", "inputs": [], "outputs": []},
                {"type": "event", "name": "PriceUpdated", "inputs": []},
            ],
        )
        cut = FacetCutBuilder(make_units(), artifacts_dir=tmp_path).build()

        pricing = next(entry for entry in cut.entries if entry.unit_name == "pricing")
        assert pricing.selectors == (selector_for("bestBid()"),)
        assert cut.unit_sources["pricing"] == "artifact"
        assert cut.unit_sources["admin"] == "fallback"

    def test_unreadable_artifact_falls_back(self, tmp_path):
        folder = tmp_path / "OBAdminFacet.sol"
        folder.mkdir()
        (folder / "OBAdminFacet.json").write_text("{not json", encoding="utf-8")

        selectors, source = FacetCutBuilder(make_units(), artifacts_dir=tmp_path).unit_selectors("admin")

        assert source == "fallback"
        assert len(selectors) == len(FACET_FALLBACK_SIGNATURES["OBAdminFacet"])

    def test_empty_artifact_is_a_build_error(self, tmp_path):
        _write_artifact(tmp_path, "OBSettlementFacet", [])

        with pytest.raises(BuildError) as exc_info:
            FacetCutBuilder(make_units(), artifacts_dir=tmp_path).build()

        assert exc_info.value.empty_units == ["settlement"]

    def test_missing_unit_address(self):
        units = make_units()
        units.execution = ""

        with pytest.raises(ConfigurationError) as exc_info:
            FacetCutBuilder(units).build()

        assert exc_info.value.missing == ["units.execution"]

    def test_describe_reports_unconfigured_units(self):
        units = make_units()
        units.view = ""

        rows = FacetCutBuilder(units).describe()

        assert [row["unit"] for row in rows] == list(UNIT_CONTRACTS)
        view = next(row for row in rows if row["unit"] == "view")
        assert view["facetAddress"] is None
        assert view["selectorCount"] == len(FACET_FALLBACK_SIGNATURES["OBViewFacet"])


class TestClientCut:
    def _allowed(self):
        return FacetCutBuilder(make_units()).configured_addresses()

    def test_structured_entries_are_accepted(self):
        units = make_units()
        raw = [
            {
                "facetAddress": units.placement.lower(),
                "action": 0,
                "functionSelectors": ["0xA9059CBB", "a9059cbb", "0x095ea7b3"],
            }
        ]

        cut = parse_client_cut(raw, self._allowed(), units.initializer)

        assert cut is not None
        assert cut.source == "client"
        assert cut.entries[0].unit_address == units.placement
        assert cut.entries[0].selectors == ("0xa9059cbb", "0x095ea7b3")

    def test_tuple_entries_are_accepted(self):
        units = make_units()
        cut = parse_client_cut([[units.admin, "0", ["0x01020304"]]], self._allowed(), units.initializer)

        assert cut is not None
        assert cut.entries[0].action == FacetCutAction.ADD

    @pytest.mark.parametrize("action", [FacetCutAction.REPLACE, FacetCutAction.REMOVE])
    def test_replace_and_remove_entries_are_rejected(self, action):
        units = make_units()
        raw = [
            {"facetAddress": units.placement, "action": 0, "functionSelectors": ["0x01020304"]},
            {"facetAddress": units.admin, "action": int(action), "functionSelectors": ["0x05060708"]},
        ]

        assert parse_client_cut(raw, self._allowed(), units.initializer) is None

    @pytest.mark.parametrize(
        "raw",
        [
            [],
            "not-a-list",
            [{"facetAddress": address_for(0x777), "action": 0, "functionSelectors": ["0x01020304"]}],
            [{"facetAddress": "0x1234", "action": 0, "functionSelectors": ["0x01020304"]}],
            [{"facetAddress": None, "action": 9, "functionSelectors": ["0x01020304"]}],
            [{"facetAddress": None, "action": 0, "functionSelectors": []}],
            [{"facetAddress": None, "action": 0, "functionSelectors": ["0x0102"]}],
        ],
    )
    def test_unusable_cuts_are_rejected(self, raw):
        units = make_units()
        for entry in raw if isinstance(raw, list) else []:
            if entry["facetAddress"] is None:
                entry["facetAddress"] = units.admin

        assert parse_client_cut(raw, self._allowed(), units.initializer) is None

    def test_direct_requests_always_use_built_cut(self):
        builder = FacetCutBuilder(make_units())
        raw = [[make_units().admin, 0, ["0x01020304"]]]

        assert choose_cut(builder, raw, gasless=False).source == "built"

    def test_gasless_request_uses_valid_client_cut(self):
        builder = FacetCutBuilder(make_units())
        raw = [[make_units().admin, 0, ["0x01020304"]]]

        cut = choose_cut(builder, raw, gasless=True)

        assert cut.source == "client"
        assert cut.initializer == make_units().initializer

    def test_gasless_request_with_foreign_unit_uses_built_cut(self):
        builder = FacetCutBuilder(make_units())
        raw = [[address_for(0x777), 0, ["0x01020304"]]]

        assert choose_cut(builder, raw, gasless=True).source == "built"
