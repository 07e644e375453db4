"""
Blockchain confirmation service.

Looks up a transaction on the chain it was sent on and reports how many
confirmations it has against the chain's minimum. Lookups never raise: an
explorer or RPC failure is reported as ``unknown`` so callers can tell it
apart from a transaction that is simply not confirmed yet.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

import base58
import httpx
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from src.blockchain.chains import Chain, get_min_confirmations
from src.core.config import settings

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
USDT_DECIMALS = 6
SATOSHIS_PER_BTC = Decimal(10**8)
LAMPORTS_PER_SOL = Decimal(10**9)
SUN_PER_TRX = Decimal(10**6)


class ConfirmationStatus(str, Enum):
    """Outcome of a confirmation lookup."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class ConfirmationResult:
    """What the chain currently says about a transaction."""
    status: ConfirmationStatus
    confirmations: int = 0
    required_confirmations: int = 0
    block_height: int | None = None
    block_time: datetime | None = None
    amount: Decimal | None = None
    fee: Decimal | None = None
    from_address: str | None = None
    to_address: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.status == ConfirmationStatus.CONFIRMED


def _from_timestamp(seconds: float | int | None) -> datetime | None:
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


def _hex(value: Any) -> str:
    return value if isinstance(value, str) else Web3.to_hex(value)


def _tron_address_from_hex(hex_address: str) -> str:
    hex_address = hex_address.removeprefix("0x")
    if not (len(hex_address) == 42 and hex_address.startswith("41")):
        hex_address = "41" + hex_address[-40:]
    return base58.b58encode_check(bytes.fromhex(hex_address)).decode()


class BlockchainService:
    """Read-only access to block explorers and RPC nodes."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        web3: AsyncWeb3 | None = None,
    ):
        """
        Initialize the blockchain service.

        Args:
            http_client: Client for Blockchair, Solana RPC and TronGrid calls
            web3: Async web3 instance for Ethereum; created lazily if omitted
        """
        self.timeout = settings.explorer_timeout_seconds
        self.session = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._web3 = web3

    @property
    def web3(self) -> AsyncWeb3:
        if self._web3 is None:
            self._web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.ethereum_rpc_url))
        return self._web3

    async def close(self) -> None:
        """Close the HTTP session."""
        await self.session.aclose()

    async def is_transaction_confirmed(
        self,
        chain: Chain | str,
        tx_hash: str,
        min_confirmations: int | None = None,
    ) -> ConfirmationResult:
        """
        Check whether a transaction has enough confirmations.

        Args:
            chain: Chain the transaction was sent on
            tx_hash: Transaction hash or signature
            min_confirmations: Override for the chain's minimum

        Returns:
            ConfirmationResult; ``unknown`` when the lookup itself failed
        """
        chain = Chain(chain)
        required = min_confirmations if min_confirmations is not None else get_min_confirmations(chain)
        checkers = {
            Chain.BITCOIN: self._check_bitcoin,
            Chain.SOLANA: self._check_solana,
            Chain.USDT_ERC20: self._check_erc20,
            Chain.USDT_TRC20: self._check_trc20,
        }

        try:
            result = await asyncio.wait_for(checkers[chain](tx_hash), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out checking {chain.value} transaction {tx_hash}")
            return ConfirmationResult(
                status=ConfirmationStatus.UNKNOWN,
                required_confirmations=required,
                error="Blockchain lookup timed out",
            )
        except Exception as e:
            logger.error(f"Error checking {chain.value} transaction {tx_hash}: {e}")
            return ConfirmationResult(
                status=ConfirmationStatus.UNKNOWN,
                required_confirmations=required,
                error=str(e),
            )

        result.required_confirmations = required
        if result.status == ConfirmationStatus.PENDING and result.confirmations >= required:
            result.status = ConfirmationStatus.CONFIRMED
        elif result.status == ConfirmationStatus.CONFIRMED and result.confirmations < required:
            result.status = ConfirmationStatus.PENDING

        logger.info(
            f"{chain.value} transaction {tx_hash}: {result.status.value} "
            f"({result.confirmations}/{required} confirmations)"
        )
        return result

    async def _check_bitcoin(self, tx_hash: str) -> ConfirmationResult:
        params = {"key": settings.blockchair_api_key} if settings.blockchair_api_key else None
        response = await self.session.get(
            f"{settings.bitcoin_explorer_url}/dashboards/transaction/{tx_hash}",
            params=params,
        )
        if response.status_code == 404:
            return ConfirmationResult(status=ConfirmationStatus.PENDING)
        response.raise_for_status()

        body = response.json()
        data = body.get("data") or {}
        tx_data = data.get(tx_hash) if isinstance(data, dict) else None
        if not tx_data:
            return ConfirmationResult(status=ConfirmationStatus.PENDING)

        transaction = tx_data["transaction"]
        block_id = transaction.get("block_id") or -1
        if "confirmation_count" in transaction:
            confirmations = int(transaction["confirmation_count"] or 0)
        elif block_id > 0:
            latest = int((body.get("context") or {}).get("state") or block_id)
            confirmations = latest - block_id + 1
        else:
            confirmations = 0

        block_time = transaction.get("time")
        if isinstance(block_time, str):
            block_time = datetime.fromisoformat(block_time)
        else:
            block_time = _from_timestamp(block_time)

        inputs = tx_data.get("inputs") or []
        outputs = tx_data.get("outputs") or []
        return ConfirmationResult(
            status=ConfirmationStatus.PENDING,
            confirmations=max(confirmations, 0),
            block_height=block_id if block_id > 0 else None,
            block_time=block_time,
            amount=Decimal(str(transaction.get("output_total", 0))) / SATOSHIS_PER_BTC,
            fee=Decimal(str(transaction.get("fee", 0))) / SATOSHIS_PER_BTC,
            from_address=inputs[0].get("recipient") if inputs else None,
            to_address=outputs[0].get("recipient") if outputs else None,
            raw=tx_data,
        )

    async def _solana_rpc(self, method: str, params: list[Any]) -> Any:
        response = await self.session.post(
            settings.solana_rpc_url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
        )
        response.raise_for_status()
        body = response.json()
        if body.get("error"):
            raise ValueError(f"Solana RPC {method} error: {body['error']}")
        return body.get("result")

    async def _check_solana(self, signature: str) -> ConfirmationResult:
        tx_data = await self._solana_rpc(
            "getTransaction",
            [signature, {"encoding": "json", "maxSupportedTransactionVersion": 0}],
        )
        if not tx_data:
            return ConfirmationResult(status=ConfirmationStatus.PENDING)

        current_slot = await self._solana_rpc("getSlot", [])
        slot = tx_data["slot"]
        meta = tx_data.get("meta") or {}
        accounts = ((tx_data.get("transaction") or {}).get("message") or {}).get("accountKeys") or []
        pre_balances = meta.get("preBalances") or []
        post_balances = meta.get("postBalances") or []

        amount = None
        if len(pre_balances) > 1 and len(post_balances) > 1:
            amount = Decimal(post_balances[1] - pre_balances[1]) / LAMPORTS_PER_SOL

        status = ConfirmationStatus.FAILED if meta.get("err") else ConfirmationStatus.PENDING
        return ConfirmationResult(
            status=status,
            confirmations=max(current_slot - slot, 0),
            block_height=slot,
            block_time=_from_timestamp(tx_data.get("blockTime")),
            amount=amount,
            fee=Decimal(meta.get("fee", 0)) / LAMPORTS_PER_SOL,
            from_address=accounts[0] if accounts else None,
            to_address=accounts[1] if len(accounts) > 1 else None,
            raw=tx_data,
        )

    async def _check_erc20(self, tx_hash: str) -> ConfirmationResult:
        eth = self.web3.eth
        try:
            tx = await eth.get_transaction(tx_hash)
            receipt = await eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return ConfirmationResult(status=ConfirmationStatus.PENDING)

        block_number = receipt["blockNumber"]
        current_block = await eth.block_number
        block = await eth.get_block(block_number)

        gas_price = receipt.get("effectiveGasPrice") or tx.get("gasPrice") or 0
        fee = Decimal(Web3.from_wei(receipt["gasUsed"] * gas_price, "ether"))

        from_address = tx["from"]
        to_address = tx.get("to")
        amount = Decimal(Web3.from_wei(tx.get("value", 0), "ether"))

        contract = settings.usdt_erc20_contract.lower()
        for log in receipt.get("logs", []):
            topics = [_hex(topic) for topic in log.get("topics", [])]
            if (
                str(log.get("address", "")).lower() == contract
                and len(topics) == 3
                and topics[0].lower() == TRANSFER_EVENT_TOPIC
            ):
                from_address = Web3.to_checksum_address("0x" + topics[1][-40:])
                to_address = Web3.to_checksum_address("0x" + topics[2][-40:])
                amount = Decimal(int(_hex(log["data"]), 16)) / Decimal(10**USDT_DECIMALS)
                break

        status = ConfirmationStatus.PENDING if receipt["status"] == 1 else ConfirmationStatus.FAILED
        return ConfirmationResult(
            status=status,
            confirmations=max(current_block - block_number, 0),
            block_height=block_number,
            block_time=_from_timestamp(block["timestamp"]),
            amount=amount,
            fee=fee,
            from_address=from_address,
            to_address=to_address,
            raw={
                "blockNumber": block_number,
                "status": receipt["status"],
                "from": tx["from"],
                "to": tx.get("to"),
            },
        )

    async def _tron_post(self, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        headers = {}
        if settings.trongrid_api_key:
            headers["TRON-PRO-API-KEY"] = settings.trongrid_api_key
        response = await self.session.post(
            f"{settings.tron_api_url}{path}",
            json=payload or {},
            headers=headers,
        )
        response.raise_for_status()
        return response.json()

    async def _check_trc20(self, tx_hash: str) -> ConfirmationResult:
        info = await self._tron_post("/wallet/gettransactioninfobyid", {"value": tx_hash})
        if not info or "blockNumber" not in info:
            return ConfirmationResult(status=ConfirmationStatus.PENDING)

        tx = await self._tron_post("/wallet/gettransactionbyid", {"value": tx_hash})
        now_block = await self._tron_post("/wallet/getnowblock")
        current_block = now_block["block_header"]["raw_data"]["number"]
        block_number = info["blockNumber"]

        from_address = to_address = None
        amount = None
        contracts = (tx.get("raw_data") or {}).get("contract") or []
        if contracts:
            value = contracts[0].get("parameter", {}).get("value", {})
            if value.get("owner_address"):
                from_address = _tron_address_from_hex(value["owner_address"])

        contract = settings.usdt_trc20_contract
        for log in info.get("log", []):
            topics = log.get("topics", [])
            if (
                len(topics) == 3
                and "0x" + topics[0].lower().removeprefix("0x") == TRANSFER_EVENT_TOPIC
                and _tron_address_from_hex(log.get("address", "")) == contract
            ):
                from_address = _tron_address_from_hex(topics[1])
                to_address = _tron_address_from_hex(topics[2])
                amount = Decimal(int(log["data"], 16)) / Decimal(10**USDT_DECIMALS)
                break

        receipt_result = (info.get("receipt") or {}).get("result", "SUCCESS")
        failed = receipt_result != "SUCCESS" or info.get("result") == "FAILED"
        return ConfirmationResult(
            status=ConfirmationStatus.FAILED if failed else ConfirmationStatus.PENDING,
            confirmations=max(current_block - block_number, 0),
            block_height=block_number,
            block_time=_from_timestamp((info.get("blockTimeStamp") or 0) / 1000),
            amount=amount,
            fee=Decimal(info.get("fee", 0)) / SUN_PER_TRX,
            from_address=from_address,
            to_address=to_address,
            raw=info,
        )


_blockchain_service: BlockchainService | None = None


def get_blockchain_service() -> BlockchainService:
    """Dependency returning the shared BlockchainService instance."""
    global _blockchain_service
    if _blockchain_service is None:
        _blockchain_service = BlockchainService()
    return _blockchain_service


async def close_blockchain_service() -> None:
    """Close the shared service's HTTP session."""
    global _blockchain_service
    if _blockchain_service is not None:
        await _blockchain_service.close()
        _blockchain_service = None
