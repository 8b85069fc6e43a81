"""
Setup verification script for the DocMaker backend.
Checks dependencies, external tools and API credentials.
"""
import asyncio
import os
import shutil
import sys
from typing import List, Tuple

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_status(message: str, status: bool):
    """Print colored status message."""
    symbol = f"{GREEN}✓{RESET}" if status else f"{RED}✗{RESET}"
    print(f"{symbol} {message}")


async def check_python_version() -> bool:
    """Check Python version is 3.11+."""
    version = sys.version_info
    if version.major == 3 and version.minor >= 11:
        print_status(f"Python version: {version.major}.{version.minor}.{version.micro}", True)
        return True
    print_status(f"Python version {version.major}.{version.minor} (requires 3.11+)", False)
    return False


async def check_dependencies() -> bool:
    """Check if required packages are importable."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "asyncpg",
        "pydantic_settings",
        "httpx",
        "aiofiles",
        "fitz",
        "docx",
        "PIL",
        "pytesseract",
        "playwright",
    ]

    all_installed = True
    for package in required_packages:
        try:
            __import__(package)
            print_status(f"Package '{package}' installed", True)
        except ImportError:
            print_status(f"Package '{package}' missing", False)
            all_installed = False

    return all_installed


async def check_env_file() -> bool:
    """Check if .env file exists."""
    if os.path.exists(".env"):
        print_status(".env file exists", True)
        return True
    print_status(".env file missing (create one with DATABASE_URL and API keys)", False)
    return False


async def check_api_keys() -> bool:
    """Gemini is required; OpenAI and ScrapeCreators only enable optional features."""
    from docmaker.config import settings

    print_status("GEMINI_API_KEY set", bool(settings.GEMINI_API_KEY))
    if not settings.OPENAI_API_KEY:
        print(f"  {YELLOW}OPENAI_API_KEY not set: proposal content uses default text{RESET}")
    if not settings.SCRAPE_CREATORS_TOKEN:
        print(f"  {YELLOW}SCRAPE_CREATORS_TOKEN not set: influencer scraping disabled{RESET}")
    return bool(settings.GEMINI_API_KEY)


async def check_tesseract() -> bool:
    """OCR for scanned briefs; Gemini vision is used when it is missing."""
    from docmaker.config import settings

    found = bool(shutil.which(settings.TESSERACT_CMD) or os.path.exists(settings.TESSERACT_CMD))
    print_status(f"Tesseract ({settings.TESSERACT_CMD})", found)
    if not found:
        print(f"  {YELLOW}Install tesseract-ocr with the heb language pack{RESET}")
    return found


async def check_chromium() -> bool:
    """PDF export needs the Playwright Chromium build."""
    try:
        from playwright.async_api import async_playwright

        async with async_playwright() as pw:
            browser = await pw.chromium.launch(args=["--no-sandbox"])
            await browser.close()
        print_status("Playwright Chromium launches", True)
        return True
    except Exception as e:
        print_status(f"Playwright Chromium failed: {str(e)}", False)
        print(f"  {YELLOW}Run: playwright install chromium{RESET}")
        return False


async def check_postgres() -> bool:
    """Check the configured database accepts connections."""
    try:
        from sqlalchemy import text
        from docmaker.database import engine

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await engine.dispose()
        print_status("Database connection successful", True)
        return True
    except Exception as e:
        print_status(f"Database connection failed: {str(e)}", False)
        return False


async def main():
    """Run all verification checks."""
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}DocMaker Backend - Setup Verification{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

    checks: List[Tuple[str, callable]] = [
        ("Python Version", check_python_version),
        ("Dependencies", check_dependencies),
        ("Environment File", check_env_file),
        ("API Keys", check_api_keys),
        ("Tesseract OCR", check_tesseract),
        ("Chromium", check_chromium),
        ("Database", check_postgres),
    ]

    results = []

    for check_name, check_func in checks:
        print(f"\n{BLUE}Checking {check_name}...{RESET}")
        try:
            result = await check_func()
            results.append(result)
        except Exception as e:
            print_status(f"Error during check: {str(e)}", False)
            results.append(False)

    # Summary
    print(f"\n{BLUE}{'='*60}{RESET}")
    passed = sum(results)
    total = len(results)

    if passed == total:
        print(f"{GREEN}✓ All checks passed! ({passed}/{total}){RESET}")
        print(f"\n{GREEN}You're ready to run the backend:{RESET}")
        print(f"  uvicorn docmaker.main:app --reload")
    else:
        print(f"{RED}✗ Some checks failed ({passed}/{total} passed){RESET}")
        print(f"\n{YELLOW}Please fix the issues above before running the backend.{RESET}")
        sys.exit(1)

    print(f"{BLUE}{'='*60}{RESET}\n")


if __name__ == "__main__":
    asyncio.run(main())
