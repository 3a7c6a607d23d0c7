#!/usr/bin/env python3
"""
Setup Verification Script

Validates configuration and connections before running the reservation
engine. Run this after setting up your .env file.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def check_env_file() -> bool:
    """Check if .env file exists."""
    env_path = project_root / ".env"
    exists = env_path.exists()
    if not exists:
        print_result(".env file", False, "File not found. Settings defaults will be used")
    else:
        print_result(".env file", True, "Found")
    return exists


def _mask_url(url: str) -> str:
    """Hide the password part of a connection URL."""
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


def check_required_vars() -> dict[str, bool]:
    """Check required environment variables."""
    results = {}

    required = [
        ("DATABASE_URL", "Required for reservations (PostgreSQL)"),
        ("REDIS_URL", "Required for wizard sessions"),
    ]

    for var, description in required:
        value = os.getenv(var, "")
        if not value:
            print_result(var, False, f"Not set - {description}")
            results[var] = False
        else:
            print_result(var, True, f"Set ({_mask_url(value)})")
            results[var] = True

    return results


def check_optional_vars() -> None:
    """Check optional environment variables."""
    optional = [
        ("APP_ENV", "development"),
        ("DEBUG", "false"),
        ("PORT", "8000"),
        ("BOT_TIMEZONE", "Asia/Kolkata"),
        ("WIZARD_SESSION_TTL", "none"),
        ("DEFAULT_ROOM_CAPACITY", "6"),
        ("NOTIFICATION_WEBHOOK_URL", "not set"),
    ]

    for var, default in optional:
        value = os.getenv(var, default)
        print_result(var, True, f"{value}")


def check_timezone() -> bool:
    """Verify the booking timezone is a known IANA zone."""
    name = os.getenv("BOT_TIMEZONE", "Asia/Kolkata")
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        print_result("Timezone", False, f"Unknown timezone {name!r} (is tzdata installed?)")
        return False
    print_result("Timezone", True, name)
    return True


async def check_postgres() -> bool:
    """Verify PostgreSQL connection."""
    from app.infra.database import check_db_health

    healthy = await check_db_health()
    if healthy:
        print_result("PostgreSQL", True, "Connection successful")
    else:
        print_result("PostgreSQL", False, "Connection failed")
    return healthy


async def check_rooms() -> bool:
    """Check that at least one active room exists to book."""
    from sqlalchemy import func, select
    from sqlalchemy.exc import SQLAlchemyError

    from app.infra.database import get_db_context
    from app.models.database import Room

    try:
        async with get_db_context() as db:
            count = await db.scalar(
                select(func.count()).select_from(Room).where(Room.is_active.is_(True))
            )
    except SQLAlchemyError as e:
        print_result("Rooms", False, str(e)[:50])
        return False

    if not count:
        print_result("Rooms", False, "No active rooms - the wizard will offer nothing")
        return False
    print_result("Rooms", True, f"{count} active room(s)")
    return True


async def check_redis() -> bool:
    """Verify Redis connection."""
    from app.infra.redis import RedisClient, check_redis_health

    healthy = await check_redis_health()
    await RedisClient.close()

    if healthy:
        print_result("Redis", True, "Connection successful")
    else:
        print_result("Redis", False, "Connection failed (wizard events will fail)")
    return healthy


async def check_webhook() -> bool:
    """Check if the notification webhook is reachable."""
    url = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
    if not url:
        print_result("Notification webhook", True, "Not configured (log only)")
        return True

    import httpx

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.head(url)
    except httpx.HTTPError:
        print_result("Notification webhook", False, f"Not reachable at {url}")
        return False

    print_result("Notification webhook", True, f"Reachable ({response.status_code})")
    return True


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "sqlalchemy",
        "asyncpg",
        "redis",
        "httpx",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    else:
        print_result("Python packages", True, "All required packages installed")
        return True


async def main():
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Reservation Engine - Setup Verification")
    print("="*60)

    all_passed = True
    critical_failed = False

    print_header("Environment File")
    if not check_env_file():
        all_passed = False

    print_header("Python Dependencies")
    if not check_dependencies():
        all_passed = False
        critical_failed = True

    print_header("Required Environment Variables")
    var_results = check_required_vars()
    if not all(var_results.values()):
        all_passed = False

    print_header("Optional Environment Variables")
    check_optional_vars()
    if not check_timezone():
        all_passed = False
        critical_failed = True

    if critical_failed:
        print_header("Summary")
        print("\n  \033[91mCRITICAL: Fix the issues above before checking services.\033[0m\n")
        return 1

    print_header("Service Connections")

    if await check_postgres():
        if not await check_rooms():
            all_passed = False
    else:
        all_passed = False
        critical_failed = True

    if not await check_redis():
        all_passed = False
        critical_failed = True

    if not await check_webhook():
        all_passed = False

    print_header("Summary")

    if critical_failed:
        print("\n  \033[91mCRITICAL: Some required services failed.\033[0m")
        print("  PostgreSQL and Redis must both be reachable.")
        print()
        return 1
    elif not all_passed:
        print("\n  \033[93mWARNING: Some optional checks failed.\033[0m")
        print("  The application may run with limited functionality.")
        print()
        return 0
    else:
        print("\n  \033[92mAll checks passed!\033[0m")
        print("  You can start the application with:")
        print("    uvicorn app.main:app --reload")
        print()
        return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
