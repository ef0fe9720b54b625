# app/services/chain_verifier.py
# solana-py 클라이언트(getTransaction)로 결제 트랜잭션을 확인한다.
import base64
import binascii
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import base58
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solders.signature import Signature

from app.config import settings
from app.errors import UpstreamVerificationError

logger = logging.getLogger(__name__)

SIGNATURE_BYTES = 64


@dataclass
class TransactionProof:
    signature: str
    success: bool
    account_keys: List[str] = field(default_factory=list)
    balance_deltas: Dict[str, int] = field(default_factory=dict)

    def delta_for(self, address: str) -> int:
        return self.balance_deltas.get(address, 0)


def is_valid_wallet_address(address: Optional[str]) -> bool:
    if not address or not isinstance(address, str) or not 32 <= len(address) <= 44:
        return False
    try:
        return len(base58.b58decode(address)) == 32
    except ValueError:
        return False


def normalize_signature(signature: str) -> str:
    """
    모바일 지갑 어댑터는 base64 서명을 보내고 RPC는 base58을 기대한다.
    64바이트 base64로 디코딩되면 base58로 변환, 아니면 그대로 사용.
    """
    signature = signature.strip()
    try:
        raw = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError):
        return signature
    if len(raw) != SIGNATURE_BYTES:
        return signature
    return base58.b58encode(raw).decode("ascii")


def to_signature(signature: str) -> Signature:
    try:
        raw = base58.b58decode(signature)
    except ValueError:
        raw = b""
    if len(raw) != SIGNATURE_BYTES:
        raise UpstreamVerificationError("Invalid transaction signature", code="INVALID_SIGNATURE")
    return Signature.from_bytes(raw)


def _key(k) -> str:
    # jsonParsed 인코딩은 ParsedAccount(pubkey=...) 형태
    return str(getattr(k, "pubkey", k))


def parse_transaction(signature: str, tx) -> TransactionProof:
    """
    tx: get_transaction(...).value (EncodedConfirmedTransactionWithStatusMeta)
    loaded_addresses 는 v0 트랜잭션의 주소 테이블 계정으로, 잔액 배열에서 정적 키 뒤에 온다.
    """
    with_meta = tx.transaction
    meta = with_meta.meta
    message = with_meta.transaction.message

    keys = [_key(k) for k in (message.account_keys or [])]
    loaded = getattr(meta, "loaded_addresses", None) if meta is not None else None
    if loaded is not None:
        keys.extend(str(k) for k in (loaded.writable or []))
        keys.extend(str(k) for k in (loaded.readonly or []))

    pre = list(meta.pre_balances or []) if meta is not None else []
    post = list(meta.post_balances or []) if meta is not None else []
    deltas: Dict[str, int] = {}
    for i, key in enumerate(keys):
        if i < len(pre) and i < len(post):
            deltas[key] = deltas.get(key, 0) + int(post[i]) - int(pre[i])

    return TransactionProof(
        signature=signature,
        success=meta is not None and meta.err is None and bool(pre) and bool(post),
        account_keys=keys,
        balance_deltas=deltas,
    )


class SolanaRpcVerifier:
    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        client: Optional[Client] = None,
    ):
        self.rpc_url = rpc_url or settings.solana_rpc_url
        self.timeout = settings.solana_rpc_timeout if timeout is None else timeout
        self.max_retries = settings.solana_rpc_max_retries if max_retries is None else max_retries
        self.retry_delay = settings.solana_rpc_retry_delay if retry_delay is None else retry_delay
        self.client = client or Client(self.rpc_url, commitment=Confirmed, timeout=self.timeout)

    def _fetch(self, signature: Signature):
        try:
            resp = self.client.get_transaction(
                signature,
                encoding="json",
                commitment=Confirmed,
                max_supported_transaction_version=0,
            )
        except RPCException as e:
            logger.warning("[CHAIN] rpc error sig=%s err=%r", str(signature)[:16], e)
            raise UpstreamVerificationError("Failed to verify transaction on-chain", code="RPC_ERROR")
        return resp.value

    def verify(self, signature: str) -> TransactionProof:
        """
        트랜잭션이 아직 confirmed 되지 않았을 수 있으므로 점증 대기 후 재시도.
        """
        signature = normalize_signature(signature)
        sig = to_signature(signature)
        tx = None
        network_failed = False

        for attempt in range(self.max_retries):
            try:
                tx = self._fetch(sig)
                network_failed = False
            except SolanaRpcException as e:
                network_failed = True
                logger.warning("[CHAIN] rpc request failed (attempt %d): %s", attempt + 1, e)
            if tx is not None:
                break
            if attempt < self.max_retries - 1:
                time.sleep(self.retry_delay * (attempt + 1))

        if tx is None:
            if network_failed:
                raise UpstreamVerificationError("Chain verification unavailable", code="RPC_UNAVAILABLE")
            raise UpstreamVerificationError("Transaction not found on-chain", code="TX_NOT_FOUND")

        proof = parse_transaction(signature, tx)
        logger.info("[CHAIN] verified sig=%s success=%s", signature[:16], proof.success)
        return proof
