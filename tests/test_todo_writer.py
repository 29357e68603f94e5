"""
Tests for writers/todo_writer.py.

Uses a real TODO.md in tmp_path. Covers moves (with checkbox/date
transitions), creation, field updates, the non-blocking write lock,
restore-on-failure and backup retention.
"""

import asyncio
import sys
import time
from datetime import date
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from taskboard.errors import (
    ConcurrentWriteError,
    ContentValidationError,
    SectionNotFoundError,
    TaskNotFoundError,
    UnknownFieldError,
)
from taskboard.parsers import parse_todo_file
from taskboard.utils.ids import next_task_id
from taskboard.writers import TodoWriter
from taskboard.writers.todo_writer import (
    apply_field_update,
    build_task_line,
    extract_task_id,
    parse_sections,
    serialize_sections,
    transition_line,
    validate_content,
)


DOC = """\
# Tasks

## Ready

- [ ] t003 Ready thing

## Backlog

- [ ] t001 First task ~2h #web
- [ ] t002 Second task P2

## In Progress

- [ ] t007 Running task started:2026-01-02

## Done

- [x] t000 Old task completed:2026-01-01
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def todo(tmp_path):
    path = tmp_path / "TODO.md"
    path.write_text(DOC, encoding="utf-8")
    return path


@pytest.fixture
def writer(todo, tmp_path):
    return TodoWriter(todo, backup_dir=tmp_path / "backups")


def _run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Line helpers
# ---------------------------------------------------------------------------

class TestLineHelpers:
    def test_extract_task_id(self):
        assert extract_task_id("- [ ] t001 Title") == "t001"
        assert extract_task_id("- [x] t001.2 Title") == "t001.2"
        assert extract_task_id("- [-] t009 Title") == "t009"
        assert extract_task_id("- [ ] No id") is None
        assert extract_task_id("  - [ ] t001 Indented") is None

    def test_transition_to_done(self):
        line = transition_line("- [ ] t001 Task", "done", "2026-02-01")
        assert line == "- [x] t001 Task completed:2026-02-01"

    def test_transition_to_done_keeps_existing_date(self):
        line = transition_line("- [ ] t001 Task completed:2025-12-31", "done", "2026-02-01")
        assert line == "- [x] t001 Task completed:2025-12-31"

    def test_transition_to_in_progress(self):
        line = transition_line("- [x] t001 Task", "inProgress", "2026-02-01")
        assert line == "- [ ] t001 Task started:2026-02-01"

    def test_transition_to_backlog_unchecks(self):
        assert transition_line("- [x] t001 Task", "backlog", "2026-02-01") == "- [ ] t001 Task"

    def test_transition_to_declined_leaves_line(self):
        assert transition_line("- [x] t001 Task", "declined", "2026-02-01") == "- [x] t001 Task"

    def test_build_task_line(self):
        line = build_task_line("t008", "Add feature", "4h", "P1", "web", "bot")
        assert line == "- [ ] t008 Add feature ~4h P1 @web assignee:bot"

    def test_build_task_line_minimal(self):
        assert build_task_line("t001", "Bare") == "- [ ] t001 Bare"

    def test_update_title_preserves_metadata(self):
        line = apply_field_update("- [ ] t001 Old title ~2h P1 #web", "title", "New title")
        assert line == "- [ ] t001 New title ~2h P1 #web"

    def test_update_estimate_replaces(self):
        line = apply_field_update("- [ ] t001 Task ~2h", "estimate", "3h")
        assert line == "- [ ] t001 Task ~3h"

    def test_update_priority_appends(self):
        line = apply_field_update("- [ ] t001 Task", "priority", "P0")
        assert line == "- [ ] t001 Task P0"

    def test_update_agent_replaces(self):
        line = apply_field_update("- [ ] t001 Task assignee:old", "agent", "new")
        assert line == "- [ ] t001 Task assignee:new"

    def test_validate_content(self):
        validate_content("## Ready\n\n- [ ] t001 Something\n")
        with pytest.raises(ContentValidationError):
            validate_content("no headers at all in this text")
        with pytest.raises(ContentValidationError):
            validate_content("# x")


class TestSections:
    def test_parse_sections_includes_empty_headers(self):
        sections, lines = parse_sections("## Ready\n\n## Backlog\n- [ ] t001 A\n")
        assert sections == {"ready": [], "backlog": ["- [ ] t001 A"]}
        assert lines[-1] == ""

    def test_serialize_untouched_is_verbatim(self):
        sections, _ = parse_sections(DOC)
        assert serialize_sections(sections, DOC, set()) == DOC

    def test_serialize_touched_without_change_is_verbatim(self):
        sections, _ = parse_sections(DOC)
        assert serialize_sections(sections, DOC, {"backlog", "done"}) == DOC

    def test_tasks_after_prose_are_not_duplicated(self):
        content = "## Backlog\n\n- [ ] t001 A\nSome prose\n- [ ] t002 B\n"
        sections, _ = parse_sections(content)
        out = serialize_sections(sections, content, {"backlog"})
        assert out.count("t001") == 1
        assert out.count("t002") == 1
        assert out == "## Backlog\n\n- [ ] t001 A\n- [ ] t002 B\nSome prose\n"


# ---------------------------------------------------------------------------
# move_task
# ---------------------------------------------------------------------------

class TestMoveTask:
    def test_move_to_done(self, writer, todo):
        _run(writer.move_task("t001", "backlog", "done"))

        today = date.today().isoformat()
        expected = DOC.replace("- [ ] t001 First task ~2h #web\n", "").replace(
            "- [x] t000 Old task completed:2026-01-01\n",
            "- [x] t000 Old task completed:2026-01-01\n"
            f"- [x] t001 First task ~2h #web completed:{today}\n",
        )
        assert todo.read_text(encoding="utf-8") == expected

        parsed = parse_todo_file(todo)
        moved = parsed.done[-1]
        assert moved.id == "t001"
        assert moved.checked is True
        assert moved.completed == today

    def test_move_to_in_progress_stamps_started(self, writer, todo):
        _run(writer.move_task("t002", "backlog", "inProgress"))
        parsed = parse_todo_file(todo)
        assert [t.id for t in parsed.in_progress] == ["t007", "t002"]
        assert parsed.in_progress[1].started == date.today().isoformat()
        assert parsed.in_progress[0].started == "2026-01-02"

    def test_move_out_of_done_unchecks(self, writer, todo):
        _run(writer.move_task("t000", "done", "ready"))
        parsed = parse_todo_file(todo)
        assert [t.id for t in parsed.ready] == ["t003", "t000"]
        assert parsed.ready[1].checked is False
        assert parsed.done == []

    def test_round_trip_restores_document(self, writer, todo):
        _run(writer.move_task("t002", "backlog", "ready"))
        assert todo.read_text(encoding="utf-8") != DOC
        _run(writer.move_task("t002", "ready", "backlog"))
        assert todo.read_text(encoding="utf-8") == DOC

    def test_same_section_move_keeps_other_lines(self, writer, todo):
        _run(writer.move_task("t001", "backlog", "backlog"))
        expected = DOC.replace(
            "- [ ] t001 First task ~2h #web\n- [ ] t002 Second task P2\n",
            "- [ ] t002 Second task P2\n- [ ] t001 First task ~2h #web\n",
        )
        assert todo.read_text(encoding="utf-8") == expected

    def test_other_sections_untouched(self, writer, todo):
        _run(writer.move_task("t001", "backlog", "done"))
        content = todo.read_text(encoding="utf-8")
        assert "## Ready\n\n- [ ] t003 Ready thing\n\n## Backlog" in content
        assert "## In Progress\n\n- [ ] t007 Running task started:2026-01-02\n" in content

    def test_task_not_found(self, writer, todo):
        with pytest.raises(TaskNotFoundError):
            _run(writer.move_task("t999", "backlog", "done"))
        assert todo.read_text(encoding="utf-8") == DOC

    def test_task_in_wrong_section(self, writer, todo):
        with pytest.raises(TaskNotFoundError):
            _run(writer.move_task("t001", "ready", "done"))
        assert todo.read_text(encoding="utf-8") == DOC

    def test_missing_target_section(self, writer, todo):
        with pytest.raises(SectionNotFoundError):
            _run(writer.move_task("t001", "backlog", "inReview"))
        assert todo.read_text(encoding="utf-8") == DOC

    def test_lock_released_after_failure(self, writer):
        with pytest.raises(TaskNotFoundError):
            _run(writer.move_task("t999", "backlog", "done"))
        assert writer.is_locked is False
        _run(writer.move_task("t001", "backlog", "done"))


# ---------------------------------------------------------------------------
# create_task
# ---------------------------------------------------------------------------

class TestCreateTask:
    def test_create_in_ready(self, writer, todo):
        task_id = _run(
            writer.create_task("Add feature", column="ready", project="web",
                               priority="P1", estimate="4h")
        )
        assert task_id == "t008"
        content = todo.read_text(encoding="utf-8")
        assert (
            "## Ready\n\n- [ ] t003 Ready thing\n- [ ] t008 Add feature ~4h P1 @web\n\n## Backlog"
            in content
        )

    def test_create_defaults_to_backlog(self, writer, todo):
        task_id = _run(writer.create_task("Plain"))
        parsed = parse_todo_file(todo)
        assert parsed.backlog[-1].id == task_id
        assert parsed.backlog[-1].title == "Plain"

    def test_create_in_empty_section(self, tmp_path):
        path = tmp_path / "TODO.md"
        path.write_text("# Tasks\n\n## Ready\n\n## Backlog\n", encoding="utf-8")
        writer = TodoWriter(path, backup_dir=tmp_path / "b")
        task_id = _run(writer.create_task("First", column="ready"))
        assert task_id == "t001"
        assert path.read_text(encoding="utf-8") == (
            "# Tasks\n\n## Ready\n\n- [ ] t001 First\n## Backlog\n"
        )

    def test_ids_are_sequential(self, writer):
        first = _run(writer.create_task("One"))
        second = _run(writer.create_task("Two"))
        assert (first, second) == ("t008", "t009")

    def test_explicit_id(self, writer, todo):
        assert _run(writer.create_task("Pinned", task_id="t100")) == "t100"
        assert "- [ ] t100 Pinned" in todo.read_text(encoding="utf-8")

    def test_missing_column(self, writer, todo):
        with pytest.raises(SectionNotFoundError):
            _run(writer.create_task("Lost", column="inReview"))
        assert todo.read_text(encoding="utf-8") == DOC


# ---------------------------------------------------------------------------
# update_task_field
# ---------------------------------------------------------------------------

class TestUpdateTaskField:
    def test_update_title_keeps_trailing_tokens(self, tmp_path):
        path = tmp_path / "TODO.md"
        path.write_text("## Backlog\n\n- [ ] t003 Old title ~2h P2 @infra\n", encoding="utf-8")
        writer = TodoWriter(path, backup_dir=tmp_path / "b")
        _run(writer.update_task_field("t003", "title", "New title"))
        assert path.read_text(encoding="utf-8") == (
            "## Backlog\n\n- [ ] t003 New title ~2h P2 @infra\n"
        )

    def test_update_title(self, writer, todo):
        _run(writer.update_task_field("t002", "title", "Renamed"))
        assert "- [ ] t002 Renamed P2\n" in todo.read_text(encoding="utf-8")

    def test_update_estimate(self, writer, todo):
        _run(writer.update_task_field("t001", "estimate", "3h"))
        assert "- [ ] t001 First task ~3h #web\n" in todo.read_text(encoding="utf-8")

    def test_update_agent_appends(self, writer, todo):
        _run(writer.update_task_field("t002", "agent", "bot"))
        parsed = parse_todo_file(todo)
        task = next(t for t in parsed.backlog if t.id == "t002")
        assert task.assignee == "bot"

    def test_unknown_field_rejected_before_io(self, writer, todo):
        with pytest.raises(UnknownFieldError):
            _run(writer.update_task_field("t001", "status", "done"))
        assert list(writer.backup_dir.iterdir()) == []
        assert todo.read_text(encoding="utf-8") == DOC

    def test_task_not_found(self, writer, todo):
        with pytest.raises(TaskNotFoundError):
            _run(writer.update_task_field("t404", "title", "x"))
        assert todo.read_text(encoding="utf-8") == DOC


# ---------------------------------------------------------------------------
# Write protocol
# ---------------------------------------------------------------------------

class TestWriteProtocol:
    def test_concurrent_write_rejected(self, writer, todo):
        async def both():
            return await asyncio.gather(
                writer.move_task("t001", "backlog", "done"),
                writer.move_task("t002", "backlog", "done"),
                return_exceptions=True,
            )

        first, second = _run(both())
        assert first is None
        assert isinstance(second, ConcurrentWriteError)

        parsed = parse_todo_file(todo)
        assert [t.id for t in parsed.done] == ["t000", "t001"]
        assert [t.id for t in parsed.backlog] == ["t002"]

    def test_cancelled_write_holds_lock_until_disk_settles(self, writer, todo):
        real_write = writer._atomic_write

        def delayed(content):
            time.sleep(0.5)
            real_write(content)

        async def scenario():
            first = asyncio.create_task(writer.move_task("t001", "backlog", "done"))
            await asyncio.sleep(0.1)
            first.cancel()
            with pytest.raises(asyncio.CancelledError):
                await first

            with pytest.raises(ConcurrentWriteError):
                await writer.move_task("t002", "backlog", "done")

            while writer.is_locked:
                await asyncio.sleep(0.05)
            await writer.move_task("t002", "backlog", "done")

        with patch.object(writer, "_atomic_write", side_effect=delayed):
            _run(scenario())

        parsed = parse_todo_file(todo)
        assert [t.id for t in parsed.done] == ["t000", "t001", "t002"]
        assert parsed.backlog == []
        assert writer.is_locked is False

    def test_restore_on_validation_failure(self, writer, todo):
        before = todo.read_bytes()
        with pytest.raises(ContentValidationError):
            _run(writer._with_backup(lambda content: "# x"))
        assert todo.read_bytes() == before
        assert writer.is_locked is False

    def test_backup_taken_per_write(self, writer, todo):
        _run(writer.move_task("t001", "backlog", "done"))
        backups = list(writer.backup_dir.iterdir())
        assert len(backups) == 1
        assert backups[0].name.startswith("TODO.md.")
        assert backups[0].read_text(encoding="utf-8") == DOC

    def test_backup_retention(self, writer):
        seeded = {f"TODO.md.{1000 + n}" for n in range(25)}
        for name in seeded:
            (writer.backup_dir / name).write_text(DOC, encoding="utf-8")

        _run(writer.move_task("t001", "backlog", "done"))

        names = sorted(p.name for p in writer.backup_dir.iterdir())
        assert len(names) == 20
        assert "TODO.md.1000" not in names
        assert "TODO.md.1024" in names
        assert len([n for n in names if n not in seeded]) == 1

    def test_no_temp_files_left(self, writer, todo):
        _run(writer.move_task("t001", "backlog", "done"))
        leftovers = [p.name for p in todo.parent.iterdir() if ".tmp." in p.name]
        assert leftovers == []

    def test_default_backup_dir(self, todo):
        writer = TodoWriter(todo)
        assert writer.backup_dir == todo.parent / "backups"
        assert writer.backup_dir.is_dir()


class TestNextTaskId:
    def test_after_highest(self):
        assert next_task_id(["t001", "t042.3", "t007"]) == "t043"

    def test_empty(self):
        assert next_task_id([]) == "t001"

    def test_wide_ids_not_truncated(self):
        assert next_task_id(["t1234"]) == "t1235"

    def test_non_numeric_ignored(self):
        assert next_task_id(["auto-1-ab", "x9"]) == "t001"
