"""Tests for selector and role id helpers."""

from eth_utils import keccak

from dexrelay.core.chain.selectors import role_id, selector_for, selectors_from_abi, selectors_from_signatures


def test_known_selector():
    assert selector_for("transfer(address,uint256)") == "0xa9059cbb"


def test_abi_selectors_skip_non_functions_and_duplicates():
    abi = [
        {"type": "function", "name": "transfer", "inputs": [{"type": "address"}, {"type": "uint256"}]},
        {"type": "event", "name": "Transfer", "inputs": []},
        {"type": "function", "name": "transfer", "inputs": [{"type": "address"}, {"type": "uint256"}]},
        {"type": "constructor", "inputs": []},
    ]

    assert selectors_from_abi(abi) == ["0xa9059cbb"]


def test_tuple_parameters_are_canonicalized():
    abi = [
        {
            "type": "function",
            "name": "metaCancelOrder",
            "inputs": [
                {
                    "type": "tuple",
                    "components": [
                        {"type": "address"},
                        {"type": "uint256"},
                        {"type": "uint256"},
                        {"type": "uint256"},
                    ],
                },
                {"type": "bytes"},
            ],
        }
    ]

    assert selectors_from_abi(abi) == [selector_for("metaCancelOrder((address,uint256,uint256,uint256),bytes)")]


def test_signature_selectors_preserve_order():
    assert selectors_from_signatures(["b()", "a()", "b()"]) == [selector_for("b()"), selector_for("a()")]


def test_role_id():
    assert role_id("ORDERBOOK_ROLE") == keccak(text="ORDERBOOK_ROLE")
