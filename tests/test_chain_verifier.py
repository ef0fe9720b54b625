import base64
from types import SimpleNamespace

import base58
import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey
from solders.signature import Signature

from app.errors import UpstreamVerificationError
from app.services.chain_verifier import (
    SolanaRpcVerifier,
    is_valid_wallet_address,
    normalize_signature,
    parse_transaction,
)
from conftest import wallet

PAYER = wallet(1)
POOL = wallet(2)
REVENUE = wallet(3)
LOOKUP = wallet(4)
SIG = base58.b58encode(bytes(range(64))).decode()


def _tx(err=None, loaded=None, pre=None, post=None):
    meta = SimpleNamespace(
        err=err,
        pre_balances=pre or [1_000_000_000, 0, 5],
        post_balances=post or [977_495_000, 20_000_000, 2_500_005],
        loaded_addresses=loaded or SimpleNamespace(writable=[], readonly=[]),
    )
    message = SimpleNamespace(account_keys=[Pubkey.from_string(k) for k in (PAYER, POOL, REVENUE)])
    return SimpleNamespace(
        slot=1,
        transaction=SimpleNamespace(meta=meta, transaction=SimpleNamespace(message=message)),
    )


class RpcDown(SolanaRpcException):
    def __init__(self):
        Exception.__init__(self, "connection refused")
        self.error_msg = "connection refused"


class FakeClient:
    """get_transaction 호출마다 준비된 값(또는 예외)을 순서대로 돌려준다."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = []

    def get_transaction(self, signature, **kwargs):
        self.calls.append((signature, kwargs))
        item = self.values.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(value=item)


def _verifier(client, retries=3):
    return SolanaRpcVerifier(rpc_url="http://rpc", max_retries=retries, retry_delay=0, client=client)


def test_wallet_address_validation():
    assert is_valid_wallet_address(PAYER)
    assert not is_valid_wallet_address("")
    assert not is_valid_wallet_address("0OIl" * 10)
    assert not is_valid_wallet_address(base58.b58encode(b"\x01" * 16).decode())


def test_base64_signature_converted_to_base58():
    raw = bytes(range(64))
    b64 = base64.b64encode(raw).decode()

    assert normalize_signature(b64) == base58.b58encode(raw).decode()


def test_base58_signature_unchanged():
    assert normalize_signature(SIG) == SIG


def test_parse_transaction_balance_deltas():
    proof = parse_transaction(SIG, _tx())

    assert proof.success
    assert proof.account_keys == [PAYER, POOL, REVENUE]
    assert proof.delta_for(POOL) == 20_000_000
    assert proof.delta_for(REVENUE) == 2_500_000
    assert proof.delta_for(PAYER) == -22_505_000
    assert proof.delta_for(wallet(9)) == 0


def test_loaded_addresses_follow_static_keys():
    loaded = SimpleNamespace(writable=[Pubkey.from_string(LOOKUP)], readonly=[])
    proof = parse_transaction(SIG, _tx(
        loaded=loaded,
        pre=[1_000_000_000, 0, 0, 0],
        post=[977_500_000, 0, 2_500_000, 20_000_000],
    ))

    assert proof.account_keys[-1] == LOOKUP
    assert proof.delta_for(LOOKUP) == 20_000_000


def test_failed_transaction_not_successful():
    assert not parse_transaction(SIG, _tx(err={"InstructionError": [0, "Custom"]})).success


def test_verify_retries_until_confirmed():
    client = FakeClient(None, _tx())

    proof = _verifier(client).verify(SIG)

    assert proof.success
    assert len(client.calls) == 2
    signature, kwargs = client.calls[0]
    assert signature == Signature.from_string(SIG)
    assert kwargs["max_supported_transaction_version"] == 0


def test_verify_accepts_base64_signature():
    client = FakeClient(_tx())

    proof = _verifier(client).verify(base64.b64encode(bytes(range(64))).decode())

    assert proof.signature == SIG


def test_verify_not_found():
    client = FakeClient(None, None)

    with pytest.raises(UpstreamVerificationError) as e:
        _verifier(client, retries=2).verify(SIG)
    assert e.value.code == "TX_NOT_FOUND"


def test_verify_network_down():
    client = FakeClient(RpcDown(), RpcDown())

    with pytest.raises(UpstreamVerificationError) as e:
        _verifier(client, retries=2).verify(SIG)
    assert e.value.code == "RPC_UNAVAILABLE"


def test_verify_recovers_after_network_error():
    client = FakeClient(RpcDown(), _tx())

    assert _verifier(client).verify(SIG).success


def test_verify_rpc_error():
    client = FakeClient(RPCException("Invalid param"))

    with pytest.raises(UpstreamVerificationError) as e:
        _verifier(client).verify(SIG)
    assert e.value.code == "RPC_ERROR"


def test_malformed_signature_rejected_before_rpc():
    client = FakeClient()

    with pytest.raises(UpstreamVerificationError) as e:
        _verifier(client).verify("not-a-signature")
    assert e.value.code == "INVALID_SIGNATURE"
    assert client.calls == []
