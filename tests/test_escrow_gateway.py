from unittest.mock import MagicMock

import pytest

from app.core.escrow_gateway import Web3EscrowGateway
from app.core.exceptions import ExternalCallError
from app.models.job import JobCategoryEnum

CONTRACT_ADDRESS = "0x" + "99" * 20
WALLETS = {
    "client-1": "0x" + "11" * 20,
    "provider-1": "0x" + "22" * 20,
}
TX_HASH = b"\x12" * 32


async def resolve_wallet(user_id):
    return WALLETS[user_id]


def make_gateway(contract_address=CONTRACT_ADDRESS):
    w3 = MagicMock()
    w3.eth.wait_for_transaction_receipt.return_value = MagicMock(status=1)
    contract = w3.eth.contract.return_value
    gateway = Web3EscrowGateway(w3, contract_address, resolve_wallet, tx_timeout=5)
    return gateway, w3, contract


def contract_job_tuple(client_confirmed=False, provider_confirmed=False, status=1):
    return (WALLETS["client-1"], WALLETS["provider-1"], 1000, status, client_confirmed, provider_confirmed)


@pytest.mark.asyncio
async def test_create_and_deposit_reads_job_id_from_event():
    gateway, w3, contract = make_gateway()
    contract.functions.createJob.return_value.transact.return_value = TX_HASH
    contract.events.JobCreated.return_value.process_receipt.return_value = [{"args": {"jobId": 42}}]

    created = await gateway.create_and_deposit(
        WALLETS["client-1"], WALLETS["provider-1"], 1000, JobCategoryEnum.PLUMBING
    )

    assert created.contract_job_id == "42"
    assert created.tx_hash == "0x" + "12" * 32
    contract.functions.createJob.assert_called_once_with(WALLETS["provider-1"], 1)
    contract.functions.createJob.return_value.transact.assert_called_once_with(
        {"from": WALLETS["client-1"], "value": 1000}
    )
    w3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HASH, timeout=5)


@pytest.mark.asyncio
async def test_reverted_transaction_raises_external_call_error():
    gateway, w3, contract = make_gateway()
    contract.functions.createJob.return_value.transact.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = MagicMock(status=0)

    with pytest.raises(ExternalCallError) as exc_info:
        await gateway.create_and_deposit(WALLETS["client-1"], WALLETS["provider-1"], 1000, JobCategoryEnum.OTHER)

    assert exc_info.value.stage == "create"
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_transport_error_keeps_underlying_message():
    gateway, _, contract = make_gateway()
    contract.functions.acceptJob.return_value.transact.side_effect = ConnectionError("node unreachable")

    with pytest.raises(ExternalCallError) as exc_info:
        await gateway.accept_in_contract("provider-1", "42")

    assert exc_info.value.stage == "accept"
    assert exc_info.value.cause == "node unreachable"


@pytest.mark.asyncio
async def test_accept_in_contract_sends_from_provider_wallet():
    gateway, _, contract = make_gateway()
    contract.functions.acceptJob.return_value.transact.return_value = TX_HASH

    tx = await gateway.accept_in_contract("provider-1", "42")

    assert tx.tx_hash == "0x" + "12" * 32
    contract.functions.acceptJob.assert_called_once_with(42)
    contract.functions.acceptJob.return_value.transact.assert_called_once_with({"from": WALLETS["provider-1"]})


@pytest.mark.asyncio
async def test_confirm_skips_when_already_confirmed_on_chain():
    gateway, _, contract = make_gateway()
    contract.functions.getJob.return_value.call.return_value = contract_job_tuple(client_confirmed=True)

    tx = await gateway.confirm_completion("client-1", "42")

    assert tx.skipped is True
    assert tx.tx_hash is None
    contract.functions.confirmCompletion.assert_not_called()


@pytest.mark.asyncio
async def test_confirm_sends_transaction_when_not_confirmed():
    gateway, _, contract = make_gateway()
    contract.functions.getJob.return_value.call.return_value = contract_job_tuple(client_confirmed=True)
    contract.functions.confirmCompletion.return_value.transact.return_value = TX_HASH

    tx = await gateway.confirm_completion("provider-1", "42")

    assert tx.skipped is False
    contract.functions.confirmCompletion.return_value.transact.assert_called_once_with({"from": WALLETS["provider-1"]})


@pytest.mark.asyncio
async def test_get_contract_job():
    gateway, _, contract = make_gateway()
    contract.functions.getJob.return_value.call.return_value = contract_job_tuple(provider_confirmed=True, status=1)

    job = await gateway.get_contract_job("42")

    assert job.amount == 1000
    assert job.status == 1
    assert job.provider_confirmed is True
    assert job.client_confirmed is False


@pytest.mark.asyncio
async def test_get_balance():
    gateway, w3, _ = make_gateway()
    w3.eth.get_balance.return_value = 5 * 10 ** 18

    assert await gateway.get_balance(WALLETS["client-1"]) == 5 * 10 ** 18


@pytest.mark.asyncio
async def test_missing_contract_address_is_an_external_error():
    gateway, _, _ = make_gateway(contract_address="")

    with pytest.raises(ExternalCallError) as exc_info:
        await gateway.get_contract_job("1")
    assert exc_info.value.stage == "query"
