from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping, Sequence

from opentelemetry import trace
from pydantic import ValidationError

from wizard.backends.base import DraftStore, PublishStore
from wizard.core.errors import (
    DEFAULT_PUBLISH_ERROR,
    LocalCacheError,
    PhotoLimitError,
    PublishError,
    RemoteSaveError,
    UnknownFieldError,
)
from wizard.schemas.form import INITIAL_FORM, Attachment, FormRecord, SaveStatus
from wizard.services.local_cache import LocalDraftCache
from wizard.services.payload import to_payload


log = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

StatusListener = Callable[[SaveStatus], None]

DEBOUNCE_SECONDS = 2.0
STATUS_DISPLAY_SECONDS = 3.0


class DraftPersistenceEngine:
    """
    Owns the listing's FormRecord and keeps it saved.

    Every edit replaces the record with a new snapshot and (re)arms one
    debounce timer. When the timer fires the snapshot of that moment is
    written to the local cache (attachments excluded) and upserted to the
    remote draft store. Save failures only show up in `status`; edits are
    never rolled back.

    Remote upserts are serialized, so a save that starts before the first
    draft id is known still goes out with that id once the earlier save
    has established it. A save still waiting for its turn when the draft
    is published or reset never reaches the remote store.
    """

    def __init__(
        self,
        *,
        draft_store: DraftStore,
        publish_store: PublishStore,
        local_cache: LocalDraftCache,
        cache_key: str = "t4bs_draft_meta",
        draft_id: int | None = None,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        status_display_seconds: float = STATUS_DISPLAY_SECONDS,
        free_plan_photo_limit: int = 5,
        paid_plan_photo_limit: int = 25,
        max_photo_bytes: int = 10 * 1024 * 1024,
        restore: bool = True,
    ):
        self._draft_store = draft_store
        self._publish_store = publish_store
        self._cache = local_cache
        self._cache_key = cache_key
        self._debounce = debounce_seconds
        self._display = status_display_seconds
        self._free_photo_limit = free_plan_photo_limit
        self._paid_photo_limit = paid_plan_photo_limit
        self._max_photo_bytes = max_photo_bytes

        self._record: FormRecord = INITIAL_FORM
        self._draft_id = draft_id
        # bumped whenever the draft identity is dropped (publish / reset) so
        # late save responses cannot bring it back
        self._identity_epoch = 0

        self._status: SaveStatus = "idle"
        self._listeners: list[StatusListener] = []

        self._pending: asyncio.Task | None = None
        self._reset_timer: asyncio.Task | None = None
        self._saves: set[asyncio.Task] = set()
        self._upsert_lock = asyncio.Lock()

        self.submitting = False
        self.submitted = False
        self.submit_error: str | None = None

        if restore:
            self.restore_local()

    # -- reads ---------------------------------------------------------------

    @property
    def record(self) -> FormRecord:
        return self._record

    @property
    def draft_id(self) -> int | None:
        return self._draft_id

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def save_pending(self) -> bool:
        return self._pending is not None

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- edits ---------------------------------------------------------------

    def set(self, field: str, value: Any) -> FormRecord:
        return self.set_many({field: value})

    def set_many(self, patch: Mapping[str, Any]) -> FormRecord:
        """
        Apply all fields as one snapshot and one debounce cycle.
        Raises UnknownFieldError / ValidationError, leaving the record as it was.
        """
        names = FormRecord.field_names()
        for field in patch:
            if field not in names:
                raise UnknownFieldError(field)

        self._record = FormRecord.model_validate({**self._record.model_dump(), **patch})
        self._schedule_auto_save()
        return self._record

    def photo_limit(self) -> int:
        return self._free_photo_limit if self._record.plan == "free" else self._paid_photo_limit

    def add_photos(self, files: Sequence[Attachment]) -> list[Attachment]:
        """
        Append photos under the size and plan limits. Oversized files are
        skipped; a batch that would exceed the plan's count is rejected whole.
        """
        valid = [f for f in files if f.size <= self._max_photo_bytes]
        if len(valid) < len(files):
            log.info("photos: skipped %d file(s) over %d bytes", len(files) - len(valid), self._max_photo_bytes)
        if not valid:
            return []

        limit = self.photo_limit()
        if len(self._record.photo_files) + len(valid) > limit:
            raise PhotoLimitError(limit, self._record.plan)

        self.set("photo_files", (*self._record.photo_files, *valid))
        return valid

    def remove_photo(self, index: int) -> Attachment:
        photos = list(self._record.photo_files)
        removed = photos.pop(index)
        self.set("photo_files", tuple(photos))
        return removed

    # -- saving --------------------------------------------------------------

    async def manual_save(self) -> bool:
        """Save now, skipping the debounce wait. Returns True on full success."""
        self._cancel_pending()
        task = self._spawn_save("manual")
        return await asyncio.shield(task)

    async def publish(self) -> bool:
        """
        Submit the current snapshot with all attachments. On success the
        draft (local cache and remote identity) is dropped; on failure the
        message stays in `submit_error` until the next attempt or reset.
        """
        self.submitting = True
        self.submit_error = None
        snapshot = self._record
        try:
            with tracer.start_as_current_span("listing.publish") as span:
                span.set_attribute("listing.photos", len(snapshot.photo_files))
                await self._publish_store.publish(payload=to_payload(snapshot), attachments=snapshot.photo_files)
        except PublishError as e:
            log.info("publish failed: %s", e.message)
            self.submit_error = e.message
            return False
        except Exception:
            log.exception("publish crashed")
            self.submit_error = DEFAULT_PUBLISH_ERROR
            return False
        finally:
            self.submitting = False

        self._cancel_pending()
        self._drop_identity()
        try:
            self._cache.remove(self._cache_key)
        except LocalCacheError:
            log.warning("publish: could not clear local draft", exc_info=True)
        self.submitted = True
        return True

    def restore_local(self) -> FormRecord:
        """Load the cached draft; missing or unusable data leaves the defaults."""
        raw = self._cache.get(self._cache_key)
        if raw is None:
            return self._record
        if not isinstance(raw, dict):
            log.warning("local draft: ignoring non-object value")
            return self._record

        names = FormRecord.field_names()
        data = {k: v for k, v in raw.items() if k in names}
        data["photo_files"] = ()
        try:
            self._record = FormRecord.model_validate({**INITIAL_FORM.model_dump(), **data})
        except ValidationError as e:
            log.warning("local draft: invalid cached record (%d errors), using defaults", e.error_count())
        return self._record

    def reset(self) -> None:
        self._cancel_pending()
        self._cancel_reset_timer()
        self._record = INITIAL_FORM
        self._drop_identity()
        self.submitted = False
        self.submit_error = None
        self._set_status("idle")

    async def aclose(self) -> None:
        self._cancel_pending()
        self._cancel_reset_timer()
        if self._saves:
            await asyncio.gather(*list(self._saves), return_exceptions=True)
        self._cancel_reset_timer()

    # -- internals -----------------------------------------------------------

    def _schedule_auto_save(self) -> None:
        self._cancel_pending()
        self._set_status("idle")
        self._pending = asyncio.create_task(self._debounced())

    async def _debounced(self) -> None:
        await asyncio.sleep(self._debounce)
        # past this point the cycle can no longer be cancelled
        self._pending = None
        self._spawn_save("auto")

    def _spawn_save(self, reason: str) -> asyncio.Task:
        task = asyncio.create_task(self._save(reason))
        self._saves.add(task)
        task.add_done_callback(self._saves.discard)
        return task

    async def _save(self, reason: str) -> bool:
        snapshot = self._record
        epoch = self._identity_epoch
        self._set_status("saving")

        with tracer.start_as_current_span("draft.save") as span:
            span.set_attribute("draft.save.reason", reason)
            ok = self._write_local(snapshot)

            try:
                async with self._upsert_lock:
                    if epoch != self._identity_epoch:
                        # the draft was published or reset while this save waited
                        log.info("draft: %s save superseded, skipping upsert", reason)
                        span.set_attribute("draft.save.superseded", True)
                        return self._finish_save(ok)
                    draft_id = self._draft_id
                    result = await self._draft_store.upsert(
                        payload=to_payload(snapshot),
                        attachments=snapshot.photo_files,
                        draft_id=draft_id,
                    )
                    if result.draft_id is not None and epoch == self._identity_epoch:
                        if self._draft_id not in (None, result.draft_id):
                            log.warning("draft: store switched id %s -> %s", self._draft_id, result.draft_id)
                        self._draft_id = result.draft_id
            except RemoteSaveError as e:
                log.warning("draft: %s save failed: %s", reason, e)
                ok = False
            except Exception:
                log.exception("draft: %s save crashed", reason)
                ok = False

            span.set_attribute("draft.save.ok", ok)
            if self._draft_id is not None:
                span.set_attribute("draft.id", self._draft_id)

        return self._finish_save(ok)

    def _finish_save(self, ok: bool) -> bool:
        self._set_status("saved" if ok else "error")
        self._reset_timer = asyncio.create_task(self._revert_to_idle())
        return ok

    def _write_local(self, snapshot: FormRecord) -> bool:
        try:
            self._cache.put(self._cache_key, snapshot.serializable())
        except LocalCacheError:
            log.warning("draft: local cache write failed", exc_info=True)
            return False
        return True

    async def _revert_to_idle(self) -> None:
        await asyncio.sleep(self._display)
        self._reset_timer = None
        self._set_status("idle")

    def _set_status(self, status: SaveStatus) -> None:
        # any transition supersedes a pending revert-to-idle
        self._cancel_reset_timer()
        if status == self._status:
            return
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                log.exception("draft: status listener failed")

    def _drop_identity(self) -> None:
        self._identity_epoch += 1
        self._draft_id = None

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _cancel_reset_timer(self) -> None:
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None
