"""
Tests for on-chain confirmation lookups.

Explorers and RPC nodes are replaced with httpx mock transports and a fake
web3 object, so no network access is needed.
"""

import asyncio
import json
from decimal import Decimal

import base58
import httpx
import pytest
from web3.exceptions import TransactionNotFound

from src.blockchain.chains import Chain
from src.core.config import settings
from src.services.blockchain_service import (
    TRANSFER_EVENT_TOPIC,
    BlockchainService,
    ConfirmationStatus,
    _tron_address_from_hex,
)

BTC_HASH = "f4184fc596403b9d638783cf57adfe4c75c605f6356fbc91338530e9831e9e16"
SOL_SIGNATURE = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"
ETH_HASH = "0x" + "ab" * 32
TRON_HASH = "cd" * 32

SENDER_HEX = "1111111111111111111111111111111111111111"
RECIPIENT_HEX = "2222222222222222222222222222222222222222"


def service_with(handler) -> BlockchainService:
    return BlockchainService(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def blockchair_handler(block_id: int, state: int):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith(f"/dashboards/transaction/{BTC_HASH}")
        return httpx.Response(
            200,
            json={
                "data": {
                    BTC_HASH: {
                        "transaction": {
                            "block_id": block_id,
                            "time": "2024-05-01 12:00:00",
                            "output_total": 34983,
                            "fee": 1500,
                        },
                        "inputs": [{"recipient": "1BoatSLRHtKNngkdXEeobR76b53LETtpyT"}],
                        "outputs": [{"recipient": "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"}],
                    }
                },
                "context": {"state": state},
            },
        )

    return handler


def solana_handler(slot: int, current_slot: int, err=None):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["method"] == "getTransaction":
            result = {
                "slot": slot,
                "blockTime": 1714564800,
                "meta": {
                    "err": err,
                    "fee": 5000,
                    "preBalances": [2_000_000_000, 0],
                    "postBalances": [1_859_995_000, 140_000_000],
                },
                "transaction": {"message": {"accountKeys": ["SenderKey", "RecipientKey"]}},
            }
        else:
            assert body["method"] == "getSlot"
            result = current_slot
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return handler


class FakeEth:
    def __init__(self, current_block: int, receipt_status: int = 1, found: bool = True):
        self.current_block = current_block
        self.receipt_status = receipt_status
        self.found = found

    async def get_transaction(self, tx_hash):
        if not self.found:
            raise TransactionNotFound(f"Transaction {tx_hash} not found")
        return {
            "from": "0x" + SENDER_HEX,
            "to": settings.usdt_erc20_contract,
            "value": 0,
            "gasPrice": 10**9,
        }

    async def get_transaction_receipt(self, tx_hash):
        return {
            "blockNumber": 100,
            "status": self.receipt_status,
            "gasUsed": 50_000,
            "effectiveGasPrice": 10**9,
            "logs": [
                {
                    "address": settings.usdt_erc20_contract,
                    "topics": [
                        TRANSFER_EVENT_TOPIC,
                        "0x" + "0" * 24 + SENDER_HEX,
                        "0x" + "0" * 24 + RECIPIENT_HEX,
                    ],
                    "data": hex(20_990_000),
                }
            ],
        }

    @property
    def block_number(self):
        async def current():
            return self.current_block

        return current()

    async def get_block(self, number):
        return {"number": number, "timestamp": 1714564800}


class FakeWeb3:
    def __init__(self, eth: FakeEth):
        self.eth = eth


def trongrid_handler(current_block: int, receipt_result: str = "SUCCESS"):
    contract_hex = base58.b58decode_check(settings.usdt_trc20_contract).hex()

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/wallet/gettransactioninfobyid":
            return httpx.Response(
                200,
                json={
                    "id": TRON_HASH,
                    "blockNumber": 1000,
                    "blockTimeStamp": 1714564800000,
                    "fee": 345000,
                    "receipt": {"result": receipt_result},
                    "log": [
                        {
                            "address": contract_hex[2:],
                            "topics": [
                                TRANSFER_EVENT_TOPIC[2:],
                                "0" * 24 + SENDER_HEX,
                                "0" * 24 + RECIPIENT_HEX,
                            ],
                            "data": format(20_990_000, "064x"),
                        }
                    ],
                },
            )
        if path == "/wallet/gettransactionbyid":
            return httpx.Response(
                200,
                json={
                    "raw_data": {
                        "contract": [{"parameter": {"value": {"owner_address": "41" + SENDER_HEX}}}]
                    }
                },
            )
        assert path == "/wallet/getnowblock"
        return httpx.Response(200, json={"block_header": {"raw_data": {"number": current_block}}})

    return handler


class TestBitcoin:
    """Blockchair lookups; 3 confirmations required."""

    @pytest.mark.asyncio
    async def test_three_confirmations_is_confirmed(self):
        service = service_with(blockchair_handler(block_id=840000, state=840002))
        result = await service.is_transaction_confirmed(Chain.BITCOIN, BTC_HASH)

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.confirmations == 3
        assert result.required_confirmations == 3
        assert result.amount == Decimal("0.00034983")
        assert result.fee == Decimal("0.000015")
        assert result.block_height == 840000
        assert result.to_address == "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"

    @pytest.mark.asyncio
    async def test_two_confirmations_is_pending(self):
        service = service_with(blockchair_handler(block_id=840000, state=840001))
        result = await service.is_transaction_confirmed(Chain.BITCOIN, BTC_HASH)

        assert result.status == ConfirmationStatus.PENDING
        assert result.confirmations == 2

    @pytest.mark.asyncio
    async def test_min_confirmations_override(self):
        service = service_with(blockchair_handler(block_id=840000, state=840001))
        result = await service.is_transaction_confirmed(Chain.BITCOIN, BTC_HASH, min_confirmations=1)
        assert result.status == ConfirmationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_zero_min_confirmations_is_respected(self):
        # Still in the mempool
        service = service_with(blockchair_handler(block_id=-1, state=840001))
        result = await service.is_transaction_confirmed(Chain.BITCOIN, BTC_HASH, min_confirmations=0)

        assert result.required_confirmations == 0
        assert result.confirmations == 0
        assert result.status == ConfirmationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_unseen_transaction_is_pending(self):
        service = service_with(lambda request: httpx.Response(404, json={"data": {}}))
        result = await service.is_transaction_confirmed(Chain.BITCOIN, BTC_HASH)

        assert result.status == ConfirmationStatus.PENDING
        assert result.confirmations == 0


class TestSolana:
    """Solana RPC lookups; 32 confirmations required."""

    @pytest.mark.asyncio
    async def test_thirty_two_slots_is_confirmed(self):
        service = service_with(solana_handler(slot=250_000_000, current_slot=250_000_032))
        result = await service.is_transaction_confirmed(Chain.SOLANA, SOL_SIGNATURE)

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.confirmations == 32
        assert result.amount == Decimal("0.14")
        assert result.fee == Decimal("0.000005")
        assert result.to_address == "RecipientKey"

    @pytest.mark.asyncio
    async def test_thirty_one_slots_is_pending(self):
        service = service_with(solana_handler(slot=250_000_000, current_slot=250_000_031))
        result = await service.is_transaction_confirmed(Chain.SOLANA, SOL_SIGNATURE)
        assert result.status == ConfirmationStatus.PENDING

    @pytest.mark.asyncio
    async def test_transaction_error_is_failed(self):
        service = service_with(
            solana_handler(slot=250_000_000, current_slot=250_000_100, err={"InstructionError": [0, "Custom"]})
        )
        result = await service.is_transaction_confirmed(Chain.SOLANA, SOL_SIGNATURE)
        assert result.status == ConfirmationStatus.FAILED

    @pytest.mark.asyncio
    async def test_rpc_error_is_unknown(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "busy"}}
            )

        result = await service_with(handler).is_transaction_confirmed(Chain.SOLANA, SOL_SIGNATURE)
        assert result.status == ConfirmationStatus.UNKNOWN
        assert "busy" in result.error


class TestErc20:
    """Ethereum USDT lookups; 12 confirmations required."""

    @pytest.mark.asyncio
    async def test_twelve_blocks_is_confirmed(self):
        service = BlockchainService(web3=FakeWeb3(FakeEth(current_block=112)))
        result = await service.is_transaction_confirmed(Chain.USDT_ERC20, ETH_HASH)

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.confirmations == 12
        assert result.amount == Decimal("20.99")
        assert result.to_address.lower() == "0x" + RECIPIENT_HEX
        assert result.fee == Decimal("0.00005")

    @pytest.mark.asyncio
    async def test_eleven_blocks_is_pending(self):
        service = BlockchainService(web3=FakeWeb3(FakeEth(current_block=111)))
        result = await service.is_transaction_confirmed(Chain.USDT_ERC20, ETH_HASH)
        assert result.status == ConfirmationStatus.PENDING
        assert result.confirmations == 11

    @pytest.mark.asyncio
    async def test_reverted_receipt_is_failed(self):
        service = BlockchainService(web3=FakeWeb3(FakeEth(current_block=200, receipt_status=0)))
        result = await service.is_transaction_confirmed(Chain.USDT_ERC20, ETH_HASH)
        assert result.status == ConfirmationStatus.FAILED

    @pytest.mark.asyncio
    async def test_not_found_is_pending(self):
        service = BlockchainService(web3=FakeWeb3(FakeEth(current_block=200, found=False)))
        result = await service.is_transaction_confirmed(Chain.USDT_ERC20, ETH_HASH)
        assert result.status == ConfirmationStatus.PENDING
        assert result.confirmations == 0


class TestTrc20:
    """TronGrid lookups; 19 confirmations required."""

    @pytest.mark.asyncio
    async def test_nineteen_blocks_is_confirmed(self):
        service = service_with(trongrid_handler(current_block=1019))
        result = await service.is_transaction_confirmed(Chain.USDT_TRC20, TRON_HASH)

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.confirmations == 19
        assert result.amount == Decimal("20.99")
        assert result.from_address == _tron_address_from_hex(SENDER_HEX)
        assert result.to_address == _tron_address_from_hex(RECIPIENT_HEX)
        assert result.to_address.startswith("T")

    @pytest.mark.asyncio
    async def test_eighteen_blocks_is_pending(self):
        service = service_with(trongrid_handler(current_block=1018))
        result = await service.is_transaction_confirmed(Chain.USDT_TRC20, TRON_HASH)
        assert result.status == ConfirmationStatus.PENDING

    @pytest.mark.asyncio
    async def test_failed_receipt_is_failed(self):
        service = service_with(trongrid_handler(current_block=2000, receipt_result="OUT_OF_ENERGY"))
        result = await service.is_transaction_confirmed(Chain.USDT_TRC20, TRON_HASH)
        assert result.status == ConfirmationStatus.FAILED

    @pytest.mark.asyncio
    async def test_unseen_transaction_is_pending(self):
        service = service_with(lambda request: httpx.Response(200, json={}))
        result = await service.is_transaction_confirmed(Chain.USDT_TRC20, TRON_HASH)
        assert result.status == ConfirmationStatus.PENDING


class TestLookupFailures:
    """Explorer failures are reported as unknown, never raised."""

    @pytest.mark.asyncio
    async def test_connection_error_is_unknown(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await service_with(handler).is_transaction_confirmed(Chain.BITCOIN, BTC_HASH)
        assert result.status == ConfirmationStatus.UNKNOWN
        assert result.required_confirmations == 3
        assert not result.confirmed

    @pytest.mark.asyncio
    async def test_server_error_is_unknown(self):
        service = service_with(lambda request: httpx.Response(502, text="bad gateway"))
        result = await service.is_transaction_confirmed(Chain.USDT_TRC20, TRON_HASH)
        assert result.status == ConfirmationStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_timeout_is_unknown(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        service = service_with(handler)
        service.timeout = 0.05
        result = await service.is_transaction_confirmed(Chain.BITCOIN, BTC_HASH)
        assert result.status == ConfirmationStatus.UNKNOWN
        assert result.error == "Blockchain lookup timed out"


class TestTronAddressFromHex:
    def test_with_and_without_prefix_agree(self):
        assert _tron_address_from_hex("41" + SENDER_HEX) == _tron_address_from_hex(SENDER_HEX)
        assert _tron_address_from_hex("0x" + SENDER_HEX) == _tron_address_from_hex(SENDER_HEX)

    def test_contract_address(self):
        contract_hex = base58.b58decode_check(settings.usdt_trc20_contract).hex()
        assert _tron_address_from_hex(contract_hex[2:]) == settings.usdt_trc20_contract
