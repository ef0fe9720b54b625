# app/config.py


from dotenv import load_dotenv
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()  # .env 먼저 읽기

BASE_DIR = Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    # 환경 구분
    app_env: str = "local"
    auto_create_tables: bool = False

    # DB
    database_url: str                        # DATABASE_URL
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:19006"

    # operator endpoints (finalize / payouts / outbox)
    operator_jwt_secret: str | None = None   # OPERATOR_JWT_SECRET

    # Solana
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    solana_rpc_timeout: float = 10.0
    solana_rpc_max_retries: int = 5
    solana_rpc_retry_delay: float = 1.0
    prize_pool_wallet: str = "C9U6pL7FcroUBcSGQR2iCEGmAydVjzEE7ZYaJuVJuEEo"
    revenue_wallet: str = "4u1UTyMBX8ghSQBagZHCzArt32XMFSw4CUXbdgo2Cv74"

    # fees (lamports)
    entry_fee_lamports: int = 20_000_000     # 0.02 SOL -> prize pool
    txn_fee_lamports: int = 2_500_000        # 0.0025 SOL -> revenue
    lives_price_lamports: int = 30_000_000   # 0.03 SOL -> revenue
    lives_per_purchase: int = 3

    # rounds
    round_hours: int = 6
    questions_per_session: int = 10
    pool_refresh_seconds: int = 120

    # entry caps
    max_entries_per_round: int = 5
    max_entries_per_24h: int = 20
    free_entries_per_round: int = 2

    # rate limit (requests per window per wallet)
    entry_rate_limit: int = 10
    purchase_rate_limit: int = 10
    practice_rate_limit: int = 20  # 클라이언트 IP 기준
    rate_limit_window_seconds: int = 60

    # answer timing / scoring
    max_answer_time_ms: int = 16000          # 15s + network slack
    scoring_window_ms: int = 15000
    base_points: int = 100
    max_time_bonus: int = 900

    # finalize
    min_players: int = 5
    payout_splits_bps: List[int] = [5000, 2000, 1500, 1000, 500]
    platform_fee_bps: int = 0

    # outbox
    outbox_max_attempts: int = 5
    outbox_retry_seconds: int = 30
    outbox_batch_size: int = 50

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",                   # 필요 없는 env 무시
    )

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

settings = Settings()

if __name__ == "__main__":
    print("BASE_DIR:", BASE_DIR)
    print("DATABASE_URL:", settings.database_url)
    print("SOLANA_RPC_URL:", settings.solana_rpc_url)
