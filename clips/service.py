"""Clip management: creating and editing clips, adding and removing notes.

Ownership is checked by looking a clip up by ``(id, user_id)``; a clip owned by
somebody else is indistinguishable from a missing one.

Updates to ``Clip.last_clipped_at`` and ``Note.clipped_count`` that follow a
membership change are best-effort. They run as separate writes after the
membership row is committed, and a failure is logged rather than reported, so
the counter can drift from the real number of memberships.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from .errors import AlreadyAddedError, NoSuchClipError, TooManyClipNotesError, TooManyClipsError
from .ids import IdGenerator
from .policies import PolicyLookup
from .repositories import ClipNoteRepository, ClipRepository, NoteRepository, is_duplicate_key_error

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self):
        return "UNSET"


UNSET = _Unset()


class ClipService:
    def __init__(
        self,
        clips: ClipRepository,
        clip_notes: ClipNoteRepository,
        notes: NoteRepository,
        policies: PolicyLookup,
        ids: IdGenerator,
        duplicate_key_check: Callable[[BaseException], bool] = is_duplicate_key_error,
    ):
        self.clips = clips
        self.clip_notes = clip_notes
        self.notes = notes
        self.policies = policies
        self.ids = ids
        self.is_duplicate_key_error = duplicate_key_check

    def create(self, me: str, name: str, is_public: bool, description=None):
        current_count = self.clips.count_by(user_id=me)
        # Compared against the count before inserting, so clip_limit + 1 clips fit
        if current_count > self.policies.get_user_policies(me).clip_limit:
            logger.info(f"User {me} hit the clip limit ({current_count} clips)")
            raise TooManyClipsError()

        clip_id = self.clips.insert({
            "id": self.ids.generate(),
            "created_at": datetime.now(timezone.utc),
            "user_id": me,
            "name": name,
            "is_public": is_public,
            "description": description,
        })

        clip = self.clips.find_one_by(id=clip_id)
        if clip is None:
            raise RuntimeError(f"Clip {clip_id} not found after insert")

        logger.info(f"User {me} created clip {clip_id}")
        return clip

    def update(self, me: str, clip_id: str, name=UNSET, is_public=UNSET, description=UNSET) -> None:
        clip = self._get_own_clip(me, clip_id)

        values = {
            key: value
            for key, value in (("name", name), ("is_public", is_public), ("description", description))
            if value is not UNSET
        }
        if not values:
            return

        self.clips.update(clip.id, values)
        logger.debug(f"Clip {clip.id} updated: {sorted(values)}")

    def delete(self, me: str, clip_id: str) -> None:
        clip = self._get_own_clip(me, clip_id)

        self.clips.delete_by(id=clip.id)
        logger.info(f"User {me} deleted clip {clip.id}")

    def add_note(self, me: str, clip_id: str, note_id: str) -> None:
        clip = self._get_own_clip(me, clip_id)

        current_count = self.clip_notes.count_by(clip_id=clip.id)
        if current_count > self.policies.get_user_policies(me).note_each_clips_limit:
            logger.info(f"Clip {clip.id} hit the note limit ({current_count} notes)")
            raise TooManyClipNotesError()

        try:
            self.clip_notes.insert({
                "id": self.ids.generate(),
                "note_id": note_id,
                "clip_id": clip.id,
            })
        except Exception as e:
            if self.is_duplicate_key_error(e):
                logger.info(f"Note {note_id} is already in clip {clip.id}")
                raise AlreadyAddedError() from e
            raise

        self._best_effort(
            "update last_clipped_at",
            self.clips.update, clip.id, {"last_clipped_at": datetime.now(timezone.utc)},
        )
        self._best_effort(
            "increment clipped_count",
            self.notes.increment, note_id, "clipped_count", 1,
        )

    def remove_note(self, me: str, clip_id: str, note_id: str) -> None:
        clip = self._get_own_clip(me, clip_id)

        removed = self.clip_notes.delete_by(note_id=note_id, clip_id=clip.id)
        if not removed:
            logger.debug(f"Note {note_id} was not in clip {clip.id}")

        # Decremented even when nothing was removed
        self._best_effort(
            "decrement clipped_count",
            self.notes.decrement, note_id, "clipped_count", 1,
        )

    def _get_own_clip(self, me, clip_id):
        clip = self.clips.find_one_by(id=clip_id, user_id=me)
        if clip is None:
            raise NoSuchClipError()
        return clip

    def _best_effort(self, action, func, *args):
        try:
            func(*args)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to {action} for {args[0]}: {e}", exc_info=True)
