#!/usr/bin/env python3
"""
NOVA - Environment Validation Script

Usage:
    poetry run python scripts/setup/validate_setup.py
"""

import platform
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))


def print_section(title: str):
    """Print section header"""
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print('=' * 60)


def check_import(module_name: str, display_name: Optional[str] = None) -> bool:
    """Check if a module can be imported and display version"""
    display_name = display_name or module_name
    try:
        mod = __import__(module_name)
        version = getattr(mod, '__version__', 'unknown')
        print(f"[OK]   {display_name:25s} {version}")
        return True
    except ImportError:
        print(f"[FAIL] {display_name:25s} Not installed")
        return False


def check_config() -> bool:
    """Check service configuration"""
    from nova.core.config import config

    ok = config.validate()
    print(f"[{'OK' if ok else 'FAIL'}]   {'Directories':25s} {config.DATA_DIR}")

    if config.llm_configured():
        print(f"[OK]   {'Gemini':25s} model={config.GEMINI_MODEL}")
    else:
        print(f"[WARN] {'Gemini':25s} GEMINI_API_KEY / GEMINI_MODEL not set; "
              f"queries will answer with a configuration error")

    print(f"[INFO] {'Image provider':25s} {config.IMAGE_PROVIDER}")
    return ok


def main():
    """Main validation function"""
    print("[CHECK] NOVA Environment Validation")
    print(f"Python Version: {sys.version}")
    print(f"Platform: {platform.system()} {platform.release()}")

    print_section("Core Dependencies")
    core = [
        check_import('fastapi', 'FastAPI'),
        check_import('uvicorn', 'Uvicorn'),
        check_import('aiosqlite', 'aiosqlite'),
        check_import('pydantic', 'Pydantic'),
        check_import('httpx', 'httpx'),
        check_import('structlog', 'structlog'),
        check_import('slowapi', 'slowapi'),
        check_import('multipart', 'python-multipart'),
        check_import('cloudinary', 'Cloudinary'),
    ]

    print_section("Development Tools")
    dev = [
        check_import('pytest', 'pytest'),
        check_import('pytest_asyncio', 'pytest-asyncio'),
    ]

    print_section("Configuration")
    config_ok = all(core) and check_config()

    print_section("Validation Summary")
    print(f"Core Dependencies:     {sum(core)}/{len(core)} passed")
    print(f"Dev Dependencies:      {sum(dev)}/{len(dev)} passed")

    if all(core) and config_ok:
        print("\n[OK] Environment validation passed!")
        return 0

    print("\n[FAIL] Environment validation failed, run: pip install -e '.[test]'")
    return 1


if __name__ == '__main__':
    sys.exit(main())
