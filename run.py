"""
Quick start script for the Proficiency Dashboard
Usage: python run.py            (Streamlit UI)
       python run.py --api      (FastAPI backend on port 8000)
"""
import subprocess
import sys
import os
from pathlib import Path

ROOT = Path(__file__).resolve().parent


def main():
    try:
        from dotenv import load_dotenv
        load_dotenv(ROOT / ".env")
    except ImportError:
        pass

    print("=" * 60)
    print("Proficiency Dashboard - Quick Start")
    print("=" * 60)

    if not os.environ.get("DATABASE_URL"):
        print("\nDATABASE_URL not set. Add it to .env or .streamlit/secrets.toml.")
    else:
        print("\nEnsuring tables exist...")
        from core.database import init_database
        init_database()
        print("✓ Database ready")

    if "--api" in sys.argv[1:]:
        print("\nStarting API on http://127.0.0.1:8000 ...")
        subprocess.run([sys.executable, "-m", "uvicorn", "api.main:app", "--reload"], cwd=ROOT)
        return

    print("\nStarting Streamlit application...")
    print("Press Ctrl+C to stop the server.\n")
    subprocess.run([sys.executable, "-m", "streamlit", "run", "app.py"], cwd=ROOT)


if __name__ == '__main__':
    main()
