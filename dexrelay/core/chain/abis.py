"""Contract ABIs used by the relayer and bundled facet signature lists."""

from __future__ import annotations

from typing import Any


def _param(type_: str, name: str = "", **extra: Any) -> dict[str, Any]:
    return {"name": name, "type": type_, **extra}


def _function(
    name: str,
    inputs: list[dict[str, Any]],
    outputs: list[dict[str, Any]] | None = None,
    mutability: str = "nonpayable",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs or [],
        "stateMutability": mutability,
    }


FACET_CUT_COMPONENTS = [
    _param("address", "facetAddress"),
    _param("uint8", "action"),
    _param("bytes4[]", "functionSelectors"),
]


def _cut_param(name: str) -> dict[str, Any]:
    return _param("tuple[]", name, components=FACET_CUT_COMPONENTS)


_CREATE_INPUTS = [
    _param("string", "marketSymbol"),
    _param("string", "metricUrl"),
    _param("uint256", "settlementDate"),
    _param("uint256", "startPrice"),
    _param("string", "dataSource"),
    _param("string[]", "tags"),
    _param("address", "diamondOwner"),
    _cut_param("cut"),
    _param("address", "initFacet"),
]

_CREATE_OUTPUTS = [_param("address", "orderBook"), _param("bytes32", "marketId")]

MARKET_CREATED_EVENT: dict[str, Any] = {
    "type": "event",
    "name": "FuturesMarketCreated",
    "anonymous": False,
    "inputs": [
        _param("address", "orderBook", indexed=True),
        _param("bytes32", "marketId", indexed=True),
        _param("string", "marketSymbol", indexed=False),
        _param("address", "creator", indexed=True),
    ],
}

FACTORY_ABI: list[dict[str, Any]] = [
    _function(
        "createFuturesMarketDiamond",
        [*_CREATE_INPUTS, _param("bytes", "initCalldata")],
        _CREATE_OUTPUTS,
    ),
    _function(
        "metaCreateFuturesMarketDiamond",
        [
            *_CREATE_INPUTS,
            _param("address", "creator"),
            _param("uint256", "nonce"),
            _param("uint256", "deadline"),
            _param("bytes", "signature"),
        ],
        _CREATE_OUTPUTS,
    ),
    _function("metaCreateNonce", [_param("address")], [_param("uint256")], "view"),
    _function(
        "eip712DomainInfo",
        [],
        [
            _param("string", "name"),
            _param("string", "version"),
            _param("uint256", "chainId"),
            _param("address", "verifyingContract"),
            _param("bytes32", "domainSeparator"),
        ],
        "view",
    ),
    MARKET_CREATED_EVENT,
]

DIAMOND_ABI: list[dict[str, Any]] = [
    _function("facetAddress", [_param("bytes4", "selector")], [_param("address")], "view"),
    _function(
        "diamondCut",
        [_cut_param("_diamondCut"), _param("address", "_init"), _param("bytes", "_calldata")],
    ),
    _function("sessionRegistry", [], [_param("address")], "view"),
    _function("setSessionRegistry", [_param("address", "registry")]),
]

VAULT_ABI: list[dict[str, Any]] = [
    _function("hasRole", [_param("bytes32", "role"), _param("address", "account")], [_param("bool")], "view"),
    _function("grantRole", [_param("bytes32", "role"), _param("address", "account")]),
]

SESSION_REGISTRY_ABI: list[dict[str, Any]] = [
    _function("allowedOrderbook", [_param("address", "orderBook")], [_param("bool")], "view"),
    _function("setAllowedOrderbook", [_param("address", "orderBook"), _param("bool", "allowed")]),
]

ABIS: dict[str, list[dict[str, Any]]] = {
    "factory": FACTORY_ABI,
    "diamond": DIAMOND_ABI,
    "vault": VAULT_ABI,
    "session_registry": SESSION_REGISTRY_ABI,
}

# Market unit -> compiled contract name, in facet cut order.
UNIT_CONTRACTS: dict[str, str] = {
    "admin": "OBAdminFacet",
    "pricing": "OBPricingFacet",
    "placement": "OBOrderPlacementFacet",
    "execution": "OBTradeExecutionFacet",
    "liquidation": "OBLiquidationFacet",
    "view": "OBViewFacet",
    "settlement": "OBSettlementFacet",
    "lifecycle": "MarketLifecycleFacet",
    "meta_trade": "MetaTradeFacet",
}

# Used when no compiled artifact is available for a unit.
FACET_FALLBACK_SIGNATURES: dict[str, tuple[str, ...]] = {
    "OBAdminFacet": (
        "updateTradingParameters(uint256,uint256,address)",
        "updateMaxSlippage(uint256)",
        "updateLeverageParameters(uint256,uint256)",
        "enableLeverage(uint256,uint256)",
        "disableLeverage()",
        "setLeverageController(address)",
        "setFeeRecipient(address)",
    ),
    "OBPricingFacet": (
        "calculateMarkPrice()",
        "getMarketPriceData()",
        "getBestPrices()",
        "bestBid()",
        "bestAsk()",
        "isBookCrossed()",
        "getOrderBookDepth(uint256)",
    ),
    "OBOrderPlacementFacet": (
        "placeLimitOrder(uint256,uint256,bool)",
        "placeMarginLimitOrder(uint256,uint256,bool)",
        "placeMarketOrder(uint256,bool)",
        "placeMarginMarketOrder(uint256,bool)",
        "placeMarketOrderWithSlippage(uint256,bool,uint256)",
        "placeMarginMarketOrderWithSlippage(uint256,bool,uint256)",
        "cancelOrder(uint256)",
        "modifyOrder(uint256,uint256,uint256)",
    ),
    "OBTradeExecutionFacet": (
        "getTradeHistory(uint256,uint256)",
        "getUserTradeHistory(address,uint256,uint256)",
        "getTradeCount()",
        "getMarketStats()",
    ),
    "OBLiquidationFacet": (
        "pokeLiquidations()",
        "isUnderLiquidationPosition(address,bytes32)",
        "liquidateDirect(address)",
    ),
    "OBViewFacet": (
        "marketStatic()",
        "getUserOrders(address)",
        "getOrder(uint256)",
        "getActiveOrdersCount()",
        "getLeverageInfo()",
        "getBestBid()",
        "getBestAsk()",
    ),
    "OBSettlementFacet": (
        "settleMarket(uint256)",
        "isSettled()",
    ),
    "MarketLifecycleFacet": (
        "initializeLifecycle(uint256,address)",
        "getSettlementTimestamp()",
        "isInSettlementChallengeWindow()",
        "getLifecycleState()",
        "syncLifecycle()",
    ),
    "MetaTradeFacet": (
        "sessionRegistry()",
        "setSessionRegistry(address)",
        "metaPlaceLimit((address,uint256,uint256,bool,uint256,uint256),bytes)",
        "metaCancelOrder((address,uint256,uint256,uint256),bytes)",
        "sessionPlaceLimit(bytes32,address,uint256,uint256,bool,bytes32[])",
        "sessionCancelOrder(bytes32,address,uint256,bytes32[])",
    ),
}

# Critical order entry points the selector repair step verifies on every new market.
PLACEMENT_SIGNATURES: tuple[str, ...] = (
    "placeLimitOrder(uint256,uint256,bool)",
    "placeMarginLimitOrder(uint256,uint256,bool)",
    "placeMarketOrder(uint256,bool)",
    "placeMarginMarketOrder(uint256,bool)",
    "placeMarketOrderWithSlippage(uint256,bool,uint256)",
    "placeMarginMarketOrderWithSlippage(uint256,bool,uint256)",
    "cancelOrder(uint256)",
)

ORDERBOOK_ROLE = "ORDERBOOK_ROLE"
SETTLEMENT_ROLE = "SETTLEMENT_ROLE"


__all__ = [
    "ABIS",
    "DIAMOND_ABI",
    "FACET_FALLBACK_SIGNATURES",
    "FACTORY_ABI",
    "MARKET_CREATED_EVENT",
    "ORDERBOOK_ROLE",
    "PLACEMENT_SIGNATURES",
    "SESSION_REGISTRY_ABI",
    "SETTLEMENT_ROLE",
    "UNIT_CONTRACTS",
    "VAULT_ABI",
]
