import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from clips import models
from clips.database import create_database_engine, init_db
from clips.ids import AidGenerator
from clips.policies import SettingsPolicyLookup, UserPolicies
from clips.repositories import SqlClipNoteRepository, SqlClipRepository, SqlNoteRepository
from clips.service import ClipService


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_database_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def policies():
    return SettingsPolicyLookup(UserPolicies(clip_limit=2, note_each_clips_limit=1))


@pytest.fixture
def service(db, policies):
    return ClipService(
        clips=SqlClipRepository(db),
        clip_notes=SqlClipNoteRepository(db),
        notes=SqlNoteRepository(db),
        policies=policies,
        ids=AidGenerator(),
    )


@pytest.fixture
def notes(db):
    """Three notes written by a third user, ids n1..n3."""
    for note_id in ("n1", "n2", "n3"):
        db.add(models.Note(id=note_id, user_id="carol", text=f"note {note_id}"))
    db.commit()
    return ["n1", "n2", "n3"]


def clipped_count(db, note_id):
    return db.scalar(select(models.Note.clipped_count).where(models.Note.id == note_id))


def clip_note_pairs(db):
    rows = db.execute(select(models.ClipNote.clip_id, models.ClipNote.note_id)).all()
    return [tuple(row) for row in rows]
