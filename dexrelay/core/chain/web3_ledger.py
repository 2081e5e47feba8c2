"""web3.py implementation of the :class:`Ledger` port."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from aiohttp import ClientError
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from dexrelay.core.chain.abis import ABIS
from dexrelay.core.chain.interfaces import (
    CallReverted,
    ContractCall,
    FeeSnapshot,
    Ledger,
    LogEntry,
    TxOverrides,
    TxReceipt,
)
from dexrelay.core.config import ChainConfig
from dexrelay.core.exceptions import ConfigurationError, ErrorCode, NetworkError, NonceConflictError

# RPC error fragments meaning the sequence number was already consumed.
_NONCE_CONFLICT_MARKERS = (
    "nonce too low",
    "already known",
    "nonce has already been used",
    "replacement transaction underpriced",
    "invalid nonce",
)

_TRANSPORT_ERRORS = (Web3Exception, ValueError, OSError, TimeoutError, ClientError)


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


def _revert_data(error: ContractLogicError) -> bytes:
    data = getattr(error, "data", None)
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str) and data.startswith("0x"):
        try:
            return bytes.fromhex(data[2:])
        except ValueError:
            return b""
    return b""


class Web3Ledger(Ledger):
    """Talks JSON-RPC through ``AsyncWeb3`` and signs locally with ``eth_account``."""

    def __init__(self, config: ChainConfig, w3: AsyncWeb3 | None = None):
        if not config.private_key:
            raise ConfigurationError("Relayer private key is not configured", missing=["chain.private_key"])
        self._config = config
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url, request_kwargs={"timeout": 30}))
        self._account: LocalAccount = Account.from_key(config.private_key)
        self._chain_id: int | None = config.chain_id

    @property
    def relayer_address(self) -> str:
        return self._account.address

    @contextmanager
    def _rpc_errors(self, operation: str, **context: Any) -> Iterator[None]:
        try:
            yield
        except (NetworkError, CallReverted):
            raise
        except _TRANSPORT_ERRORS as exc:
            message = str(exc)
            if any(marker in message.lower() for marker in _NONCE_CONFLICT_MARKERS):
                raise NonceConflictError(
                    f"{operation} rejected: {message}",
                    nonce=context.get("nonce"),
                ) from exc
            logger.warning(
                "Ledger request failed",
                extra={"operation": operation, "error": message, **context},
            )
            raise NetworkError(f"{operation} failed: {message}", details=context) from exc

    def _function(self, call: ContractCall):
        try:
            abi = ABIS[call.abi_name]
        except KeyError as exc:
            raise ConfigurationError(f"Unknown contract ABI {call.abi_name!r}") from exc
        contract = self._w3.eth.contract(address=to_checksum_address(call.address), abi=abi)
        return getattr(contract.functions, call.function)(*call.args)

    async def chain_id(self) -> int:
        if self._chain_id is None:
            with self._rpc_errors("eth_chainId"):
                self._chain_id = int(await self._w3.eth.chain_id)
        return self._chain_id

    async def pending_nonce(self, address: str) -> int:
        with self._rpc_errors("eth_getTransactionCount", address=address):
            return int(await self._w3.eth.get_transaction_count(to_checksum_address(address), "pending"))

    async def fee_snapshot(self) -> FeeSnapshot:
        with self._rpc_errors("fee_snapshot"):
            block = await self._w3.eth.get_block("latest")
            base_fee = block.get("baseFeePerGas")
            gas_price = int(await self._w3.eth.gas_price)
            if base_fee is None:
                return FeeSnapshot(gas_price=gas_price)
            try:
                priority = int(await self._w3.eth.max_priority_fee)
            except _TRANSPORT_ERRORS as exc:
                logger.debug("eth_maxPriorityFeePerGas unavailable", extra={"error": str(exc)})
                priority = None
            return FeeSnapshot(base_fee=int(base_fee), max_priority_fee=priority, gas_price=gas_price)

    async def get_code(self, address: str) -> bytes:
        with self._rpc_errors("eth_getCode", address=address):
            return bytes(await self._w3.eth.get_code(to_checksum_address(address)))

    async def call(self, call: ContractCall) -> Any:
        with self._rpc_errors("eth_call", function=call.function):
            try:
                return await self._function(call).call({"from": self.relayer_address})
            except ContractLogicError as exc:
                raise CallReverted(_revert_data(exc), getattr(exc, "message", None) or str(exc)) from exc

    async def static_call(self, call: ContractCall) -> Any:
        with self._rpc_errors("static_call", function=call.function):
            try:
                return await self._function(call).call({"from": self.relayer_address, "value": call.value})
            except ContractLogicError as exc:
                raise CallReverted(_revert_data(exc), getattr(exc, "message", None) or str(exc)) from exc

    async def send(self, call: ContractCall, overrides: TxOverrides) -> str:
        context = {"function": call.function, "nonce": overrides.nonce}
        try:
            chain_id = await self.chain_id()
            with self._rpc_errors("build_transaction", **context):
                try:
                    tx = await self._function(call).build_transaction(
                        {
                            "from": self.relayer_address,
                            "chainId": chain_id,
                            "value": call.value,
                            **overrides.as_tx_fields(),
                        }
                    )
                except ContractLogicError as exc:
                    raise NetworkError(
                        f"{call.function} reverted during gas estimation: {exc}",
                        error_code=ErrorCode.TRANSACTION_REVERTED.value,
                        details={"function": call.function},
                    ) from exc
                signed = self._account.sign_transaction(tx)
        except NetworkError as exc:
            # Nothing was handed to the node yet.
            exc.broadcast = False
            raise

        with self._rpc_errors("send_raw_transaction", **context):
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        return _hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TxReceipt:
        with self._rpc_errors("wait_for_receipt", tx_hash=tx_hash):
            try:
                receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            except TimeExhausted as exc:
                raise NetworkError(
                    f"Transaction {tx_hash} was not confirmed within {timeout:.0f}s",
                    error_code=ErrorCode.CONFIRMATION_TIMEOUT.value,
                    tx_hash=tx_hash,
                ) from exc

        logs = tuple(
            LogEntry(
                address=to_checksum_address(log["address"]),
                topics=tuple(bytes(topic) for topic in log["topics"]),
                data=bytes(log["data"]),
            )
            for log in receipt.get("logs", [])
        )
        return TxReceipt(
            tx_hash=tx_hash,
            status=int(receipt.get("status", 0)),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            logs=logs,
        )


__all__ = ["Web3Ledger"]
