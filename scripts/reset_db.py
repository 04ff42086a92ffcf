#!/usr/bin/env python3
"""Script to reset the chat memory database (sessions and messages).

Usage:
  python scripts/reset_db.py [--force] [--user USER_ID]
"""

import argparse
import sys
from pathlib import Path

# Add project root to sys.path so we can import consultant packages
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from consultant.core.config import Settings
from consultant.core.database import Base, ChatMessageRow, ChatSessionRow, init_db


def reset_all(settings: Settings, force: bool):
    """Drop and recreate the chat tables."""
    print("🧊 Resetting chat memory database...")
    if not force:
        confirm = input("  This will delete all chat history. Continue? [y/N]: ")
        if confirm.lower() != 'y':
            print("  Skipping reset.")
            return

    session_factory = init_db(settings.database_url)
    engine = session_factory.kw["bind"]
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    print("  ✅ Tables dropped and recreated.")


def reset_user(settings: Settings, user_id: str, force: bool):
    """Delete one user's sessions and messages."""
    print(f"🧊 Deleting chat history of user {user_id}...")
    if not force:
        confirm = input("  Continue? [y/N]: ")
        if confirm.lower() != 'y':
            print("  Skipping.")
            return

    session_factory = init_db(settings.database_url)
    with session_factory() as db:
        messages = db.query(ChatMessageRow).filter(ChatMessageRow.user_id == user_id).delete()
        sessions = db.query(ChatSessionRow).filter(ChatSessionRow.user_id == user_id).delete()
        db.commit()
    print(f"  🗑️ Deleted {sessions} sessions, {messages} messages.")


def main():
    parser = argparse.ArgumentParser(description="Reset the consultant chat memory.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompts")
    parser.add_argument("--user", help="Only delete history of this user id")
    args = parser.parse_args()

    load_dotenv(project_root / ".env")
    settings = Settings.from_env()

    print("\n⚠️ WARNING: Database Reset ⚠️\n")
    if args.user:
        reset_user(settings, args.user, args.force)
    else:
        reset_all(settings, args.force)
    print("✅ Done!")


if __name__ == "__main__":
    main()
