import os
import asyncio
import discord
from discord.ext import commands
from attendance.lifecycle import EventLifecycleManager
from attendance.orchestrator import AttendanceOrchestrator
from attendance.reconciler import AttendanceReconciler
from attendance.render import DISCORD_MAX_MESSAGE_LEN
from attendance.render import chunk_text
from attendance.rollover import WeeklyRolloverScheduler
from attendance.settings import AttendanceSettings
from attendance.templates import TemplateStore
from attendance.templates import default_templates_path
from config.defaults import DEFAULT_CHANNEL_NAME
from config.defaults import DEFAULT_CUTOFF_HOUR
from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_LEAD_TIME_HOURS
from config.defaults import DEFAULT_TICK_SECONDS
from config.defaults import DEFAULT_TIMEZONE
from db.connection import init_db
from jobs.attendance import attendance_loop as attendance_loop_service
from misc.discord_gates import member_is_admin
from misc.discord_platform import DiscordPlatform
from misc.runtime_wiring import wire_bot_runtime

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")

if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")

# Railway persistent path (set this to your mounted volume path)
DB_PATH = os.getenv("ROLLCALL_DB_PATH", DEFAULT_DB_PATH).strip() or DEFAULT_DB_PATH
# Deployment note: manage this via ROLLCALL_TEMPLATES_PATH explicitly.
TEMPLATES_PATH = os.getenv("ROLLCALL_TEMPLATES_PATH", "").strip() or default_templates_path()
ATTENDANCE_ENABLED = os.getenv("ROLLCALL_ENABLED", "1").strip() == "1"

# Unset means: use the templates file value, then the built-in default.
TIMEZONE_NAME = os.getenv("ROLLCALL_TIMEZONE", "").strip() or None
CHANNEL_NAME = os.getenv("ROLLCALL_CHANNEL_NAME", "").strip() or None

try:
    TICK_SECONDS = int(os.getenv("ROLLCALL_TICK_SECONDS", str(DEFAULT_TICK_SECONDS)).strip())
except ValueError:
    print(f"[CFG] invalid ROLLCALL_TICK_SECONDS; falling back to {DEFAULT_TICK_SECONDS}")
    TICK_SECONDS = DEFAULT_TICK_SECONDS
try:
    LEAD_TIME_HOURS = float(os.getenv("ROLLCALL_LEAD_TIME_HOURS", str(DEFAULT_LEAD_TIME_HOURS)).strip())
except ValueError:
    print(f"[CFG] invalid ROLLCALL_LEAD_TIME_HOURS; falling back to {DEFAULT_LEAD_TIME_HOURS}")
    LEAD_TIME_HOURS = DEFAULT_LEAD_TIME_HOURS
try:
    CUTOFF_HOUR = int(os.getenv("ROLLCALL_CUTOFF_HOUR", str(DEFAULT_CUTOFF_HOUR)).strip())
except ValueError:
    CUTOFF_HOUR = DEFAULT_CUTOFF_HOUR
if not 0 <= CUTOFF_HOUR <= 23:
    print(f"[CFG] invalid ROLLCALL_CUTOFF_HOUR={CUTOFF_HOUR}; falling back to {DEFAULT_CUTOFF_HOUR}")
    CUTOFF_HOUR = DEFAULT_CUTOFF_HOUR

print(
    f"[CFG] attendance_enabled={ATTENDANCE_ENABLED} "
    f"tz={TIMEZONE_NAME or '(templates/' + DEFAULT_TIMEZONE + ')'} "
    f"channel={CHANNEL_NAME or '(templates/' + DEFAULT_CHANNEL_NAME + ')'} "
    f"lead_h={LEAD_TIME_HOURS} cutoff_h={CUTOFF_HOUR} tick_s={TICK_SECONDS}"
)
print(f"[CFG] templates_path={TEMPLATES_PATH}")

# =========================
# SQLITE
# =========================
db_conn = init_db(DB_PATH)
print(f"[DB] Using DB_PATH={DB_PATH}")
print(f"[DB] DB file exists? {os.path.exists(DB_PATH)}")
db_lock = asyncio.Lock()


async def send_chunked(channel: discord.abc.Messageable, text: str) -> None:
    for part in chunk_text(text, DISCORD_MAX_MESSAGE_LEN):
        await channel.send(part)

# =========================
# DISCORD BOT
# =========================
intents = discord.Intents.default()
intents.message_content = True
intents.members = True
intents.reactions = True

bot = commands.Bot(command_prefix="!", intents=intents)

platform = DiscordPlatform(bot)
templates = TemplateStore(TEMPLATES_PATH)
settings = AttendanceSettings(
    timezone_name=TIMEZONE_NAME,
    default_channel_name=CHANNEL_NAME,
    lead_time_hours=LEAD_TIME_HOURS,
    cutoff_hour=CUTOFF_HOUR,
)

lifecycle = EventLifecycleManager(
    db_lock=db_lock,
    db_conn=db_conn,
    platform=platform,
    templates=templates,
    settings=settings,
)
reconciler = AttendanceReconciler(db_lock=db_lock, db_conn=db_conn, platform=platform)
rollover = WeeklyRolloverScheduler(
    db_lock=db_lock,
    db_conn=db_conn,
    platform=platform,
    lifecycle=lifecycle,
)
orchestrator = AttendanceOrchestrator(
    db_lock=db_lock,
    db_conn=db_conn,
    lifecycle=lifecycle,
    reconciler=reconciler,
    rollover=rollover,
)

async def attendance_loop() -> None:
    return await attendance_loop_service(
        orchestrator=orchestrator,
        interval_seconds=TICK_SECONDS,
    )

wire_bot_runtime(
    bot,
    db_lock=db_lock,
    db_conn=db_conn,
    orchestrator=orchestrator,
    send_chunked=send_chunked,
    user_is_admin=member_is_admin,
    attendance_enabled=ATTENDANCE_ENABLED,
    attendance_loop_func=attendance_loop,
)


bot.run(DISCORD_TOKEN)
