"""
Database initialization, migration, and seeding utilities.
"""
import json
import sys
import argparse
from pathlib import Path
from shared.models.entities import Base
from shared.repositories import LessonRepository
from shared.utils.constants import MAX_LESSON_NODES, MIN_LESSON_NODES
from database import get_db_manager


def migrate():
    """Create all database tables."""
    print("Creating database tables...")
    db_manager = get_db_manager()

    try:
        Base.metadata.create_all(bind=db_manager.engine)
        print("✓ Tables created")
    except Exception as e:
        print(f"Error during migration: {e}")
        raise


def seed_lesson(seed_file_path: str):
    """
    Create a lesson from a JSON outline, skipping structure generation.

    File format:
        {"topic": ..., "subject": ..., "difficulty_level": ...,
         "nodes": [{"title": ..., "vocabulary_terms": [...], "metadata_hint": ...}]}
    """
    print(f"Loading lesson outline from {seed_file_path}...")

    path = Path(seed_file_path)
    if not path.exists():
        print(f"Error: Seed file not found: {seed_file_path}")
        return

    with open(path, 'r') as f:
        data = json.load(f)

    outlines = data.get("nodes", [])
    if not MIN_LESSON_NODES <= len(outlines) <= MAX_LESSON_NODES:
        print(f"Error: a lesson needs {MIN_LESSON_NODES}-{MAX_LESSON_NODES} nodes, file has {len(outlines)}")
        return

    db_manager = get_db_manager()
    with db_manager.session_scope() as db:
        lesson = LessonRepository(db).create(
            topic=data["topic"],
            subject=data["subject"],
            difficulty_level=data.get("difficulty_level", "beginner"),
            outlines=outlines,
        )
        print(f"✓ Created lesson {lesson.id} with {lesson.node_count} nodes")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Database management CLI")
    parser.add_argument("--migrate", action="store_true", help="Create database tables")
    parser.add_argument("--seed-lesson", type=str, help="Create a lesson from a JSON outline file")

    args = parser.parse_args()

    if args.migrate:
        migrate()
    elif args.seed_lesson:
        seed_lesson(args.seed_lesson)
    else:
        print("Usage:")
        print("  python db.py --migrate                  # Create tables")
        print("  python db.py --seed-lesson <json_file>  # Load a lesson outline")
        sys.exit(1)
