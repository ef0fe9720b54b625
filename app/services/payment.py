# app/services/payment.py
# 입장료 / 라이프 구매 결제 증빙 검증 (잔액 변화 기준, 정확히 일치해야 통과)
import logging
from typing import List, Optional, Sequence

from app.config import settings
from app.errors import UpstreamVerificationError, ValidationError
from app.services.chain_verifier import TransactionProof, normalize_signature

logger = logging.getLogger(__name__)


def _check_proof(proof: TransactionProof, wallet: str) -> None:
    if not proof.success:
        raise UpstreamVerificationError("Transaction not found or failed on-chain", code="TX_FAILED")
    if wallet not in proof.account_keys:
        raise UpstreamVerificationError(
            "Sender wallet not found in transaction",
            code="SENDER_MISMATCH",
            expectedSender=wallet,
        )


def entry_signatures(entry_tx_signature: str, fee_tx_signature: Optional[str] = None) -> List[str]:
    sigs = [normalize_signature(entry_tx_signature)]
    if fee_tx_signature:
        fee_sig = normalize_signature(fee_tx_signature)
        if fee_sig in sigs:
            raise ValidationError("feeTxSignature must differ from entryTxSignature")
        sigs.append(fee_sig)
    return sigs


def check_entry_payment(proofs: Sequence[TransactionProof], wallet: str) -> None:
    """
    허용 패턴 두 가지:
    1) 트랜잭션 1건: prize pool <- entry fee, revenue <- txn fee
    2) 트랜잭션 2건: 같은 두 목적지로 각각 송금 (합계가 정확히 일치)
    그 외 금액/목적지 누락은 모두 실패 처리.
    """
    if not 1 <= len(proofs) <= 2:
        raise ValidationError("Entry requires one or two transaction signatures")

    prize_total = 0
    revenue_total = 0
    for proof in proofs:
        _check_proof(proof, wallet)
        prize = proof.delta_for(settings.prize_pool_wallet)
        revenue = proof.delta_for(settings.revenue_wallet)
        if len(proofs) == 2 and prize <= 0 and revenue <= 0:
            # 두 번째 송금이 엉뚱한 곳으로 갔다면 패턴 2가 아님
            raise UpstreamVerificationError(
                "Transaction does not pay the prize pool or revenue wallet",
                code="PAYMENT_MISMATCH",
                signature=proof.signature,
            )
        prize_total += prize
        revenue_total += revenue

    prize_ok = prize_total == settings.entry_fee_lamports
    revenue_ok = revenue_total == settings.txn_fee_lamports
    if not (prize_ok and revenue_ok):
        logger.warning(
            "[PAYMENT] entry mismatch wallet=%s prize=%d/%d revenue=%d/%d",
            wallet, prize_total, settings.entry_fee_lamports,
            revenue_total, settings.txn_fee_lamports,
        )
        raise UpstreamVerificationError(
            "Payment verification failed: Invalid amounts or recipients",
            code="PAYMENT_MISMATCH",
            prizePool={"expected": settings.entry_fee_lamports, "actual": prize_total},
            revenue={"expected": settings.txn_fee_lamports, "actual": revenue_total},
        )


def check_lives_payment(proof: TransactionProof, wallet: str) -> None:
    _check_proof(proof, wallet)
    paid = proof.delta_for(settings.revenue_wallet)
    if paid != settings.lives_price_lamports:
        logger.warning("[PAYMENT] lives mismatch wallet=%s paid=%d", wallet, paid)
        raise UpstreamVerificationError(
            "Transaction verification failed: invalid amount, sender, or recipient",
            code="PAYMENT_MISMATCH",
        )
