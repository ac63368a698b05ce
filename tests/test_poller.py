"""
Tests for event-log confirmation polling.
"""
import pytest
from unittest.mock import MagicMock

from eth_abi.exceptions import DecodingError
from eth_utils import keccak
from hexbytes import HexBytes

from krnl_sdk.exceptions import ConfirmationTimeoutError
from krnl_sdk.execution.poller import INTENT_EXECUTED_EVENT_ABI, ConfirmationPoller
from tests.test_helpers import TEST_ADDRESS, TEST_TARGET

INTENT_ID = "0x" + "ab" * 32
OTHER_ID = "0x" + "cd" * 32
EVENT_TOPIC = "0x" + keccak(text="IntentExecuted(address,uint256,bytes32)").hex()


def execution_log(intent_id, block=120, tx_hash="0x" + "11" * 32):
    return {
        "address": TEST_TARGET,
        "topics": [
            HexBytes(EVENT_TOPIC),
            HexBytes(bytes(12) + bytes.fromhex(TEST_ADDRESS[2:])),
            HexBytes((3).to_bytes(32, "big")),
            HexBytes(intent_id),
        ],
        "data": HexBytes(b""),
        "blockNumber": block,
        "transactionHash": HexBytes(tx_hash),
        "logIndex": 0,
    }


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.block_number = 20000
    w3.eth.get_logs.return_value = []
    return w3


def test_event_topic_and_index(w3):
    poller = ConfirmationPoller(w3)
    assert poller.event_topic == EVENT_TOPIC
    assert poller.id_topic_index == 3


def test_id_field_must_be_indexed(w3):
    event_abi = dict(INTENT_EXECUTED_EVENT_ABI)
    event_abi["inputs"] = [dict(i, indexed=(i["name"] != "id")) for i in event_abi["inputs"]]

    with pytest.raises(ValueError, match="indexed 'id'"):
        ConfirmationPoller(w3, event_abi=event_abi)


def test_find_execution_scans_recent_window(w3):
    ConfirmationPoller(w3).find_execution(INTENT_ID, TEST_TARGET.lower())

    w3.eth.get_logs.assert_called_once_with({
        "address": TEST_TARGET,
        "fromBlock": 10000,
        "toBlock": 20000,
        "topics": [EVENT_TOPIC],
    })


def test_find_execution_window_clamped_at_genesis(w3):
    w3.eth.block_number = 50
    ConfirmationPoller(w3, block_lookback=100).find_execution(INTENT_ID, TEST_TARGET)
    assert w3.eth.get_logs.call_args.args[0]["fromBlock"] == 0


def test_find_execution_matches_intent_id(w3):
    w3.eth.get_logs.return_value = [execution_log(OTHER_ID, block=110), execution_log(INTENT_ID, block=120)]
    decode = w3.eth.contract.return_value.events.IntentExecuted.return_value.process_log
    decode.return_value = {"args": {"caller": TEST_ADDRESS, "nonce": 3, "id": bytes.fromhex(INTENT_ID[2:])}}

    result = ConfirmationPoller(w3).find_execution(INTENT_ID, TEST_TARGET)

    assert result.block_number == 120
    assert result.transaction_hash == "0x" + "11" * 32
    assert result.log_index == 0
    assert result.event_args == {"caller": TEST_ADDRESS, "nonce": 3, "id": INTENT_ID}


def test_find_execution_no_match(w3):
    w3.eth.get_logs.return_value = [execution_log(OTHER_ID)]
    assert ConfirmationPoller(w3).find_execution(INTENT_ID, TEST_TARGET) is None


def test_find_execution_ignores_logs_without_id_topic(w3):
    log = execution_log(INTENT_ID)
    log["topics"] = log["topics"][:2]
    w3.eth.get_logs.return_value = [log]
    assert ConfirmationPoller(w3).find_execution(INTENT_ID, TEST_TARGET) is None


def test_undecodable_log_falls_back_to_intent_id(w3):
    w3.eth.get_logs.return_value = [execution_log(INTENT_ID)]
    decode = w3.eth.contract.return_value.events.IntentExecuted.return_value.process_log
    decode.side_effect = DecodingError("bad data")

    result = ConfirmationPoller(w3).find_execution(INTENT_ID, TEST_TARGET)
    assert result.event_args == {"id": INTENT_ID}


def test_await_confirmation_retries_after_rpc_errors(w3):
    w3.eth.get_logs.side_effect = [ConnectionError("flaky"), [], [execution_log(INTENT_ID)]]

    result = ConfirmationPoller(w3, poll_interval=0).await_confirmation(INTENT_ID, TEST_TARGET, timeout=5)

    assert result.block_number == 120
    assert w3.eth.get_logs.call_count == 3


def test_await_confirmation_times_out(w3):
    with pytest.raises(ConfirmationTimeoutError) as excinfo:
        ConfirmationPoller(w3, poll_interval=0).await_confirmation(INTENT_ID, TEST_TARGET, timeout=0)

    assert excinfo.value.intent_id == INTENT_ID
    assert not excinfo.value.cancelled


def test_cancel_stops_await(w3):
    poller = ConfirmationPoller(w3, poll_interval=30)

    def logs(params):
        poller.cancel()
        return []

    w3.eth.get_logs.side_effect = logs

    with pytest.raises(ConfirmationTimeoutError) as excinfo:
        poller.await_confirmation(INTENT_ID, TEST_TARGET, timeout=60)
    assert excinfo.value.cancelled
