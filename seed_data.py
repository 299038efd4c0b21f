import logging

from clips.database import SessionLocal, engine, init_db
from clips import models
from clips.config import settings
from clips.ids import AidGenerator

logger = logging.getLogger(__name__)

DEMO_USER_ID = "demo"

NOTES_DATA = [
    "Reading list for the weekend: distributed systems papers",
    "Great thread on writing maintainable SQL migrations",
    "Photo dump from the mountain trip",
    "Recipe: slow-cooked ragù, the long version",
    "Notes from the conference keynote",
    "A surprisingly good explanation of B-trees",
]

def seed_database(db=None, bind=None):
    """Create the tables and insert demo notes if the notes table is empty.

    Returns the number of notes inserted.
    """
    target = settings.database_url.split('@')[1] if '@' in settings.database_url else settings.database_url
    logger.info(f"🌱 Seeding database at: {target}")

    init_db(bind=bind or engine)

    owns_session = db is None
    db = db or SessionLocal()
    ids = AidGenerator()

    try:
        if db.query(models.Note).count() > 0:
            logger.info("✅ Database already has notes")
            return 0

        for body in NOTES_DATA:
            db.add(models.Note(id=ids.generate(), user_id=DEMO_USER_ID, text=body))

        db.commit()
        logger.info(f"✅ Database seeded with {len(NOTES_DATA)} notes")
        return len(NOTES_DATA)

    except Exception as e:
        logger.error(f"❌ Error seeding database: {e}")
        db.rollback()
        raise
    finally:
        if owns_session:
            db.close()

if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(levelname)s - %(message)s")
    seed_database()
