import json
import asyncpg
import redis.asyncio as redis
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger
from gorillionaire.models import ActionType, BadgeType, Choice, DailyQuestType, QuestType, RewardType

logger = Logger("Database")


def sql_values(enum_cls) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


class DatabaseUnavailable(RuntimeError):
    """Raised when a configured database cannot be reached at startup."""


class Database:
    def __init__(self):
        self.pool: asyncpg.Pool = None
        self.redis: redis.Redis = None

    async def connect(self):
        # Postgres
        if settings.DATABASE_URL:
            try:
                self.pool = await asyncpg.create_pool(
                    settings.DATABASE_URL,
                    timeout=10,
                    command_timeout=45,
                )
                logger.info("✅ Connected to PostgreSQL")
                await self.init_db()
            except (OSError, asyncpg.PostgresError) as e:
                logger.error("Failed to connect to PostgreSQL", e)
                raise DatabaseUnavailable(f"PostgreSQL unreachable: {e}") from e
        else:
            logger.warn("DATABASE_URL not configured, running without persistence")

        # Redis
        if settings.REDIS_URL:
            try:
                self.redis = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
                await self.redis.ping()
                logger.info("✅ Connected to Redis")
            except (OSError, redis.RedisError) as e:
                # Cache only, keep serving without it
                logger.error("Failed to connect to Redis", e)
                self.redis = None

    async def disconnect(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Closed PostgreSQL connection")
        if self.redis:
            await self.redis.close()
            self.redis = None
            logger.info("Closed Redis connection")

    async def init_db(self):
        """Initialize database tables if they don't exist."""
        if not self.pool:
            return

        async with self.pool.acquire() as conn:
            # Users and their activity log
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS user_activity (
                    address TEXT PRIMARY KEY,
                    nonce TEXT,
                    points INTEGER DEFAULT 0,
                    last_sign_in TIMESTAMPTZ DEFAULT NOW(),
                    streak INTEGER DEFAULT 0,
                    is_rewarded BOOLEAN DEFAULT FALSE,
                    nad_name TEXT,
                    nad_avatar TEXT,
                    v2_enabled BOOLEAN DEFAULT FALSE,
                    v2_enabled_at TIMESTAMPTZ,
                    v2_access_code_used TEXT,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    updated_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS activities (
                    id SERIAL PRIMARY KEY,
                    address TEXT NOT NULL,
                    name TEXT NOT NULL,
                    points INTEGER NOT NULL,
                    date TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    signal_id TEXT,
                    tx_hash TEXT,
                    referral_id TEXT,
                    referred_user_address TEXT,
                    activity_type TEXT DEFAULT 'other',
                    metadata JSONB DEFAULT '{}'::jsonb
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_activities_address_date
                ON activities(address, date DESC);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_activities_date
                ON activities(date);
            """)

            # Bearer tokens issued by the wallet login provider
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS user_auth (
                    user_address TEXT NOT NULL,
                    access_token TEXT NOT NULL,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    PRIMARY KEY (user_address, access_token)
                );
            """)

            # Badges
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS badges (
                    id SERIAL PRIMARY KEY,
                    badge_name TEXT NOT NULL,
                    badge_description TEXT NOT NULL,
                    badge_image TEXT NOT NULL,
                    badge_type TEXT NOT NULL CHECK (
                        badge_type IN ({sql_values(BadgeType)})
                    )
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS user_badges (
                    id SERIAL PRIMARY KEY,
                    badge_id INTEGER NOT NULL REFERENCES badges(id) ON DELETE CASCADE,
                    address TEXT NOT NULL,
                    is_unlocked BOOLEAN DEFAULT FALSE,
                    is_claimed BOOLEAN DEFAULT FALSE,
                    claimed_at TIMESTAMPTZ,
                    unlocked_at TIMESTAMPTZ,
                    claimed_by TEXT,
                    unlocked_by TEXT,
                    claimed_tx_hash TEXT,
                    unlocked_tx_hash TEXT,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    updated_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_user_badges_address
                ON user_badges(address);
            """)

            # Quests
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS quests (
                    id SERIAL PRIMARY KEY,
                    quest_name TEXT NOT NULL,
                    quest_description TEXT NOT NULL,
                    quest_image TEXT NOT NULL,
                    quest_type TEXT NOT NULL CHECK (
                        quest_type IN ({sql_values(QuestType)})
                    ),
                    badge_awarded INTEGER REFERENCES badges(id),
                    quest_requirement INTEGER NOT NULL,
                    quest_reward_type TEXT NOT NULL CHECK (
                        quest_reward_type IN ({sql_values(RewardType)})
                    ),
                    quest_reward_amount INTEGER NOT NULL
                );
            """)

            # Daily quests, one row per user per quest per UTC day
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS daily_quests (
                    id SERIAL PRIMARY KEY,
                    quest_name TEXT NOT NULL,
                    quest_description TEXT NOT NULL,
                    quest_image TEXT NOT NULL,
                    quest_type TEXT NOT NULL CHECK (
                        quest_type IN ({sql_values(DailyQuestType)})
                    ),
                    quest_requirement INTEGER NOT NULL,
                    quest_reward_type TEXT NOT NULL CHECK (
                        quest_reward_type IN ({sql_values(RewardType)})
                    ),
                    quest_reward_amount INTEGER NOT NULL,
                    quest_level INTEGER DEFAULT 1,
                    is_active BOOLEAN DEFAULT TRUE,
                    quest_order INTEGER DEFAULT 0,
                    created_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS user_daily_quests (
                    id SERIAL PRIMARY KEY,
                    quest_id INTEGER NOT NULL REFERENCES daily_quests(id) ON DELETE CASCADE,
                    address TEXT NOT NULL,
                    quest_date DATE NOT NULL,
                    quest_order INTEGER DEFAULT 0,
                    current_progress INTEGER DEFAULT 0,
                    is_completed BOOLEAN DEFAULT FALSE,
                    completed_at TIMESTAMPTZ,
                    claimed_at TIMESTAMPTZ,
                    last_progress_update TIMESTAMPTZ,
                    is_active BOOLEAN DEFAULT TRUE,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    UNIQUE (address, quest_id, quest_date)
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_user_daily_quests_completed
                ON user_daily_quests(address, completed_at DESC) WHERE is_completed;
            """)

            # Closed weeks of the weekly leaderboard
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS weekly_leaderboards (
                    id SERIAL PRIMARY KEY,
                    week_start TIMESTAMPTZ NOT NULL,
                    week_end TIMESTAMPTZ NOT NULL,
                    week_number INTEGER NOT NULL,
                    year INTEGER NOT NULL,
                    total_weekly_points INTEGER DEFAULT 0,
                    total_participants INTEGER DEFAULT 0,
                    is_completed BOOLEAN DEFAULT TRUE,
                    completed_at TIMESTAMPTZ DEFAULT NOW(),
                    leaderboard JSONB NOT NULL DEFAULT '[]'::jsonb,
                    raffle_winners JSONB NOT NULL DEFAULT '[]'::jsonb,
                    UNIQUE (year, week_number)
                );
            """)

            # On-chain events pushed by the indexer
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS transfers (
                    id TEXT PRIMARY KEY,
                    token_name TEXT,
                    token_symbol TEXT NOT NULL,
                    token_decimals INTEGER NOT NULL,
                    token_address TEXT NOT NULL,
                    from_address TEXT NOT NULL,
                    to_address TEXT NOT NULL,
                    amount NUMERIC NOT NULL,
                    transaction_hash TEXT UNIQUE NOT NULL,
                    block_number BIGINT NOT NULL,
                    block_timestamp BIGINT NOT NULL,
                    created_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_transfers_token
                ON transfers(token_name, created_at DESC);
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS spikes (
                    id TEXT PRIMARY KEY,
                    token_name TEXT NOT NULL,
                    token_symbol TEXT NOT NULL,
                    token_decimals INTEGER NOT NULL,
                    token_address TEXT NOT NULL,
                    this_hour_transfers INTEGER NOT NULL,
                    previous_hour_transfers INTEGER NOT NULL,
                    block_number BIGINT NOT NULL,
                    block_timestamp BIGINT NOT NULL,
                    created_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)

            # Signals
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS generated_signals (
                    id SERIAL PRIMARY KEY,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    token TEXT,
                    action TEXT,
                    quantity TEXT,
                    confidence DOUBLE PRECISION DEFAULT 0,
                    signal_text TEXT NOT NULL,
                    events TEXT
                );
            """)
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS user_signals (
                    id SERIAL PRIMARY KEY,
                    user_address TEXT NOT NULL,
                    signal_id TEXT NOT NULL,
                    choice TEXT NOT NULL CHECK (choice IN ({sql_values(Choice)})),
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    UNIQUE (user_address, signal_id)
                );
            """)
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS user_signals_v2 (
                    id SERIAL PRIMARY KEY,
                    user_address TEXT NOT NULL,
                    signal_id TEXT NOT NULL,
                    choice TEXT NOT NULL CHECK (choice IN ({sql_values(Choice)})),
                    symbol TEXT NOT NULL,
                    action_type TEXT NOT NULL CHECK (action_type IN ({sql_values(ActionType)})),
                    price_at_signal DOUBLE PRECISION NOT NULL,
                    created_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_user_signals_v2_address
                ON user_signals_v2(user_address, created_at DESC);
            """)

            # V2 access codes
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS access_codes (
                    code TEXT PRIMARY KEY,
                    max_redeems INTEGER NOT NULL DEFAULT 1,
                    current_redeems INTEGER DEFAULT 0,
                    is_active BOOLEAN DEFAULT TRUE,
                    created_by TEXT NOT NULL,
                    expires_at TIMESTAMPTZ,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    updated_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS access_code_redemptions (
                    code TEXT NOT NULL REFERENCES access_codes(code) ON DELETE CASCADE,
                    address TEXT NOT NULL,
                    redeemed_at TIMESTAMPTZ DEFAULT NOW(),
                    PRIMARY KEY (code, address)
                );
            """)

            # Referrals
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS referrals (
                    id SERIAL PRIMARY KEY,
                    referrer_address TEXT UNIQUE NOT NULL,
                    referral_code TEXT UNIQUE NOT NULL,
                    total_points_earned INTEGER DEFAULT 0,
                    created_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS referred_users (
                    referral_id INTEGER NOT NULL REFERENCES referrals(id) ON DELETE CASCADE,
                    address TEXT UNIQUE NOT NULL,
                    joined_at TIMESTAMPTZ DEFAULT NOW(),
                    points_earned INTEGER DEFAULT 100,
                    is_active BOOLEAN DEFAULT TRUE
                );
            """)

            # Market data snapshots
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS price_data (
                    id SERIAL PRIMARY KEY,
                    token_symbol TEXT NOT NULL,
                    price DOUBLE PRECISION NOT NULL,
                    timestamp TIMESTAMPTZ NOT NULL,
                    block_number BIGINT DEFAULT 0,
                    address TEXT,
                    created_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
            # Insert time for incremental context ingest (migration for existing DBs)
            await conn.execute("""
                ALTER TABLE price_data
                ADD COLUMN IF NOT EXISTS created_at TIMESTAMPTZ DEFAULT NOW();
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_price_data_symbol_time
                ON price_data(token_symbol, timestamp DESC);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_price_data_created
                ON price_data(created_at, id);
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS token_holder_snapshots (
                    id SERIAL PRIMARY KEY,
                    token_name TEXT NOT NULL,
                    contract_address TEXT NOT NULL,
                    holders JSONB NOT NULL,
                    fetched_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)

            logger.info("Database tables initialized")


db = Database()


def require_pool() -> asyncpg.Pool:
    if not db.pool:
        raise DatabaseUnavailable("Database not connected")
    return db.pool


class CacheService:
    """Redis cache wrapper with convenience methods."""

    def __init__(self, redis_client):
        self.redis = redis_client

    async def get(self, key: str) -> str:
        if not self.redis:
            return None
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl: int = None):
        if not self.redis:
            return
        if ttl:
            await self.redis.setex(key, ttl, value)
        else:
            await self.redis.set(key, value)

    async def delete(self, key: str):
        if not self.redis:
            return
        await self.redis.delete(key)

    async def get_json(self, key: str):
        data = await self.get(key)
        return json.loads(data) if data else None

    async def set_json(self, key: str, value, ttl: int = None):
        await self.set(key, json.dumps(value, default=str), ttl)


def get_cache() -> CacheService:
    return CacheService(db.redis)
