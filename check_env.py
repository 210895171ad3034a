#!/usr/bin/env python3
"""Helper script to check the .env file and the backends it points at."""

from pathlib import Path
import os

ENV_TEMPLATE = """# Supabase (optional - the in-memory store is used when unset)
# Get these from: https://supabase.com/dashboard -> Your Project -> Settings -> API
DISPATCH_SUPABASE_URL=https://your-project-id.supabase.co
DISPATCH_SUPABASE_KEY=your-service-role-key-here

# API Configuration
DISPATCH_API_PREFIX=/api
# DISPATCH_FRONTEND_ALLOWED_ORIGINS - JSON array or comma-separated list

# Master data
DISPATCH_STATIONS_FILE=./data/stations.csv
DISPATCH_RESOURCES_FILE=./data/resources.csv

# Routing and motion
DISPATCH_OSRM_BASE_URL=https://router.project-osrm.org
DISPATCH_DEFAULT_SPEED_MPS=20
DISPATCH_DEFAULT_ANCHOR=59.9139,10.7522
"""


def _masked(value: str) -> str:
    if len(value) > 30:
        return value[:20] + "..." + value[-6:]
    return value


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Fleet Dispatch environment checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        print(f"❌ .env file NOT found at: {env_file}")
        with open(env_file, "w", encoding="utf-8") as f:
            f.write(ENV_TEMPLATE)
        print(f"✅ Created template .env file at: {env_file}")
        print("⚠️  Edit it and restart the backend.")
        return

    print(f"✅ Found .env file at: {env_file}")
    for line in env_file.read_text(encoding="utf-8").splitlines():
        if line.startswith("DISPATCH_SUPABASE_KEY=") and "=" in line:
            name, value = line.split("=", 1)
            print(f"   {name}={_masked(value.strip())}")
        elif line.strip() and not line.startswith("#"):
            print(f"   {line}")
    print()

    for name in ("DISPATCH_SUPABASE_URL", "DISPATCH_SUPABASE_KEY", "DISPATCH_OSRM_BASE_URL"):
        value = os.getenv(name)
        if value:
            print(f"✅ {name} (from environment): {_masked(value)}")
        else:
            print(f"ℹ️  {name} not set in the process environment (the .env file still applies)")
    print()

    try:
        import sys
        sys.path.insert(0, str(project_root / "src"))
        from fleet_dispatch.config import settings
        from fleet_dispatch.services.routing.osrm_client import check_health
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print("Make sure you're running this from the project root directory")
        return

    if settings.supabase_url and settings.supabase_key:
        print("✅ Supabase configured: movements are shared through the database")
    else:
        print("ℹ️  Supabase NOT configured: movements live in the in-memory store of one process")

    print(f"OSRM at {settings.osrm_base_url}: {'reachable' if check_health() else 'unreachable (straight-line fallback)'}")


if __name__ == "__main__":
    main()
