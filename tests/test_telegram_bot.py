"""Tests for agendabot.bot.telegram_bot — command handlers and rendering.

Handlers run against a real ActionService on a temp database; Telegram
objects are mocked.
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from agendabot.bot.telegram_bot import (
    ADDACT_USAGE,
    HELP_TEXT,
    INVALID_DATE,
    INVALID_TIME,
    render_activity_list,
    render_error,
    render_subject_list,
)
from agendabot.core.action_service import (
    ActionService,
    ActivityInfo,
    ActivityListResponse,
    ErrorKind,
    ErrorResponse,
    ResponseKind,
    SubjectGroup,
    SubjectListResponse,
)

TZ = ZoneInfo("Asia/Manila")
ADMIN_ID = 12345
CHAT_ID = -1001


def _make_update(user_id=ADMIN_ID, chat_id=CHAT_ID, chat_type="supergroup"):
    update = MagicMock()
    update.effective_user.id = user_id
    update.effective_chat.id = chat_id
    update.effective_chat.type = chat_type
    update.message.reply_text = AsyncMock()
    return update


def _make_context(service=None, args=None, bootstrapper=None):
    context = MagicMock()
    context.args = args or []
    context.bot_data = {"service": service or MagicMock(), "bootstrapper": bootstrapper or MagicMock()}
    return context


def _reply_text(update):
    update.message.reply_text.assert_awaited_once()
    return update.message.reply_text.call_args.args[0]


@pytest.fixture
def service(activity_db, subject_db, clock):
    subject_db.add_subject("English")
    subject_db.add_subject("Araling Panlipunan")
    return ActionService(activity_db, subject_db, clock)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRenderError:
    def test_time_and_date(self):
        time_err = ErrorResponse(ResponseKind.ERROR, "bad", ErrorKind.INVALID_INPUT, "time")
        date_err = ErrorResponse(ResponseKind.ERROR, "bad", ErrorKind.INVALID_INPUT, "date")
        assert render_error(time_err) == INVALID_TIME
        assert render_error(date_err) == INVALID_DATE

    def test_subject_choices(self):
        err = ErrorResponse(
            ResponseKind.ERROR, 'Subject "Physics" not found.', ErrorKind.NOT_FOUND,
            "subject", ["Math", "English"],
        )
        text = render_error(err)
        assert "Physics" in text
        assert "• Math\n• English" in text
        assert "/addsub" in text

    def test_generic(self):
        err = ErrorResponse(ResponseKind.ERROR, "Something broke.", ErrorKind.STORAGE)
        assert render_error(err) == "❌ Something broke."


class TestRenderLists:
    def test_empty_activity_list(self):
        response = ActivityListResponse(ResponseKind.QUERY_RESULT, "No pending activities.")
        assert render_activity_list(response) == "📭 No pending activities."

    def test_activity_list(self):
        info = ActivityInfo(
            id="1", name="Quiz_1", display_name="Quiz 1", subject="Math",
            deadline=datetime(2025, 11, 19, 22, 0, tzinfo=TZ),
            deadline_text="November 19, 2025 at 10:00 PM", day_name="Wednesday",
            time_label="10:00 PM", countdown="5d 14h left",
        )
        response = ActivityListResponse(
            ResponseKind.QUERY_RESULT, "Pending activities.",
            groups=[SubjectGroup(subject="Math", activities=[info])],
        )
        text = render_activity_list(response)
        assert "📚 Math" in text
        assert "- Quiz 1\n  Wednesday, Nov 19, 2025 10:00 PM\n  ⏳ 5d 14h left" in text

    def test_subject_list(self):
        text = render_subject_list(SubjectListResponse(
            ResponseKind.QUERY_RESULT, "Active subjects.", subjects=["Math", "English"],
        ))
        assert "1. Math\n2. English" in text

    def test_empty_subject_list(self):
        text = render_subject_list(SubjectListResponse(ResponseKind.QUERY_RESULT, "none"))
        assert text == "📭 No subjects registered yet!"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAdminOnly:
    @pytest.mark.asyncio
    async def test_non_admin_rejected(self):
        from agendabot.bot.telegram_bot import cmd_addact

        service = MagicMock()
        update = _make_update(user_id=99999)
        context = _make_context(service, args=["Quiz_1", "Math", "11/19/2025"])

        await cmd_addact(update, context)

        assert "only available for admins" in _reply_text(update)
        service.add_activity.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_user_rejected(self):
        from agendabot.bot.telegram_bot import cmd_removesub

        update = _make_update()
        update.effective_user = None
        context = _make_context(args=["Math"])

        await cmd_removesub(update, context)
        assert "only available for admins" in _reply_text(update)


class TestGroupOnly:
    @pytest.mark.asyncio
    async def test_private_activities_creates_no_tenant(self, activity_db, subject_db, clock, tmp_path):
        from agendabot.bot.telegram_bot import cmd_activities
        from agendabot.core.bootstrap import TenantBootstrapper
        from agendabot.data.legacy import LegacySnapshot

        path = tmp_path / "activities.json"
        path.write_text(json.dumps({"activities": [{
            "id": "1", "name": "Quiz_1", "subject": "Math",
            "deadline": "2025-11-20T16:00:00.000Z", "time": None,
        }]}), encoding="utf-8")
        bootstrapper = TenantBootstrapper(
            activity_db, clock, legacy=LegacySnapshot(path, "Asia/Manila"),
        )
        service = ActionService(activity_db, subject_db, clock, bootstrapper)
        update = _make_update(user_id=99999, chat_id=999, chat_type="private")

        await cmd_activities(update, _make_context(service, bootstrapper=bootstrapper))

        assert _reply_text(update) == "❌ This command only works in group chats."
        assert 999 not in [t.chat_id for t in activity_db.list_tenants()]
        assert activity_db.load_activities(999) == []

    @pytest.mark.asyncio
    async def test_private_addact_never_reaches_service(self):
        from agendabot.bot.telegram_bot import cmd_addact

        service = MagicMock()
        update = _make_update(chat_id=ADMIN_ID, chat_type="private")
        await cmd_addact(update, _make_context(service, args=["Quiz_1", "Math", "11/19/2025"]))

        assert "only works in group chats" in _reply_text(update)
        service.list_subjects.assert_not_called()
        service.add_activity.assert_not_called()

    @pytest.mark.asyncio
    async def test_group_chat_allowed(self, service):
        from agendabot.bot.telegram_bot import cmd_activities

        update = _make_update(chat_type="group")
        await cmd_activities(update, _make_context(service))
        assert _reply_text(update) == "📭 No pending activities."


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestHelp:
    @pytest.mark.asyncio
    async def test_help(self):
        from agendabot.bot.telegram_bot import cmd_help

        update = _make_update(user_id=99999)
        await cmd_help(update, _make_context())
        assert _reply_text(update) == HELP_TEXT


class TestAddact:
    @pytest.mark.asyncio
    async def test_adds_activity(self, service, activity_db):
        from agendabot.bot.telegram_bot import cmd_addact

        update = _make_update()
        context = _make_context(
            service, args=["Quiz_1", "Araling", "Panlipunan", "12/01/2025", "10:00pm"],
        )

        await cmd_addact(update, context)

        text = _reply_text(update)
        assert text.startswith("✅ Activity added successfully!")
        assert "📝 Activity: Quiz 1" in text
        assert "📚 Subject: Araling Panlipunan" in text
        assert "📅 Deadline: December 1, 2025 at 10:00 PM" in text
        [stored] = activity_db.load_activities(CHAT_ID)
        assert stored.created_by == str(ADMIN_ID)

    @pytest.mark.asyncio
    async def test_unknown_subject(self, service, activity_db):
        from agendabot.bot.telegram_bot import cmd_addact

        update = _make_update()
        await cmd_addact(update, _make_context(service, args=["Quiz_1", "Physics", "12/01/2025"]))

        text = _reply_text(update)
        assert 'Subject "Physics" not found!' in text
        assert "• English\n• Araling Panlipunan" in text
        assert activity_db.load_activities(CHAT_ID) == []

    @pytest.mark.asyncio
    async def test_extra_word_after_subject(self, service, activity_db):
        from agendabot.bot.telegram_bot import cmd_addact

        update = _make_update()
        await cmd_addact(update, _make_context(service, args=["Quiz", "English", "extra", "12/01/2025"]))

        assert 'Subject "English extra" not found!' in _reply_text(update)
        assert activity_db.load_activities(CHAT_ID) == []

    @pytest.mark.asyncio
    async def test_no_date(self, service):
        from agendabot.bot.telegram_bot import cmd_addact

        update = _make_update()
        await cmd_addact(update, _make_context(service, args=["Quiz_1", "English", "soon"]))
        assert _reply_text(update).startswith("❌ No valid date found!")

    @pytest.mark.asyncio
    async def test_usage(self, service):
        from agendabot.bot.telegram_bot import cmd_addact

        update = _make_update()
        await cmd_addact(update, _make_context(service, args=[]))
        assert _reply_text(update) == "❌ Invalid format!\n\n" + ADDACT_USAGE

    @pytest.mark.asyncio
    async def test_invalid_time(self, service):
        from agendabot.bot.telegram_bot import cmd_addact

        update = _make_update()
        await cmd_addact(update, _make_context(service, args=["Quiz_1", "English", "12/01/2025", "10:70pm"]))
        assert _reply_text(update) == INVALID_TIME


class TestExtend:
    @pytest.mark.asyncio
    async def test_extends(self, service):
        from agendabot.bot.telegram_bot import cmd_extend

        service.add_activity(CHAT_ID, ADMIN_ID, "Essay", "English", "11/19/2025")
        update = _make_update()
        await cmd_extend(update, _make_context(service, args=["Essay", "11/25/2025", "11:59pm"]))

        text = _reply_text(update)
        assert "📅 Old Deadline: November 19, 2025" in text
        assert "📅 New Deadline: November 25, 2025 at 11:59 PM" in text

    @pytest.mark.asyncio
    async def test_not_found(self, service):
        from agendabot.bot.telegram_bot import cmd_extend

        update = _make_update()
        await cmd_extend(update, _make_context(service, args=["Ghost", "11/25/2025"]))
        assert _reply_text(update) == '❌ Activity "Ghost" not found.'

    @pytest.mark.asyncio
    async def test_usage(self, service):
        from agendabot.bot.telegram_bot import cmd_extend

        update = _make_update()
        await cmd_extend(update, _make_context(service, args=["Essay"]))
        assert _reply_text(update).startswith("❌ Invalid format!")


class TestListing:
    @pytest.mark.asyncio
    async def test_activities_open_to_everyone(self, service):
        from agendabot.bot.telegram_bot import cmd_activities

        service.add_activity(CHAT_ID, ADMIN_ID, "Essay", "English", "11/19/2025")
        update = _make_update(user_id=99999)
        await cmd_activities(update, _make_context(service))

        text = _reply_text(update)
        assert "📋 Pending Activities" in text
        assert "- Essay" in text

    @pytest.mark.asyncio
    async def test_activities_read_failure(self):
        from agendabot.bot.telegram_bot import cmd_activities

        service = MagicMock()
        service.list_activities.return_value = ErrorResponse(
            ResponseKind.ERROR, "Could not read activities. Please try again.", ErrorKind.STORAGE,
        )
        update = _make_update()
        await cmd_activities(update, _make_context(service))
        assert _reply_text(update) == "❌ Could not read activities. Please try again."

    @pytest.mark.asyncio
    async def test_listsub(self, service):
        from agendabot.bot.telegram_bot import cmd_listsub

        update = _make_update(user_id=99999)
        await cmd_listsub(update, _make_context(service))
        assert "1. English\n2. Araling Panlipunan" in _reply_text(update)


class TestSubjectCommands:
    @pytest.mark.asyncio
    async def test_addsub_multi_word(self, service):
        from agendabot.bot.telegram_bot import cmd_addsub

        update = _make_update()
        await cmd_addsub(update, _make_context(service, args=["Home", "Economics"]))
        assert _reply_text(update) == '✅ Subject "Home Economics" added.'
        assert "Home Economics" in service.list_subjects().subjects

    @pytest.mark.asyncio
    async def test_addsub_without_name(self, service):
        from agendabot.bot.telegram_bot import cmd_addsub

        update = _make_update()
        await cmd_addsub(update, _make_context(service, args=[]))
        assert _reply_text(update).startswith("❌ Please provide a subject name!")

    @pytest.mark.asyncio
    async def test_removesub(self, service):
        from agendabot.bot.telegram_bot import cmd_removesub

        update = _make_update()
        await cmd_removesub(update, _make_context(service, args=["english"]))
        assert _reply_text(update) == '✅ Subject "English" removed.'

    @pytest.mark.asyncio
    async def test_removeact(self, service, activity_db):
        from agendabot.bot.telegram_bot import cmd_removeact

        service.add_activity(CHAT_ID, ADMIN_ID, "Essay", "English", "11/19/2025")
        update = _make_update()
        await cmd_removeact(update, _make_context(service, args=["Essay"]))
        assert _reply_text(update) == '✅ Activity "Essay" removed.'
        assert activity_db.load_activities(CHAT_ID) == []


class TestUnknownCommand:
    @pytest.mark.asyncio
    async def test_replies_with_help_hint(self):
        from agendabot.bot.telegram_bot import cmd_unknown

        update = _make_update(user_id=99999)
        update.message.text = "/x some args"
        await cmd_unknown(update, _make_context())
        assert _reply_text(update) == "❌ Unknown command: /x\n\nType /help for available commands."

    @pytest.mark.asyncio
    async def test_addressed_to_this_bot(self):
        from agendabot.bot.telegram_bot import cmd_unknown

        update = _make_update()
        update.message.text = "/x@Agenda_Bot"
        context = _make_context()
        context.bot.username = "agenda_bot"
        await cmd_unknown(update, context)
        assert _reply_text(update).startswith("❌ Unknown command: /x\n")

    @pytest.mark.asyncio
    async def test_ignores_other_bots_commands(self):
        from agendabot.bot.telegram_bot import cmd_unknown

        update = _make_update()
        update.message.text = "/start@some_other_bot"
        context = _make_context()
        context.bot.username = "agenda_bot"
        await cmd_unknown(update, context)
        update.message.reply_text.assert_not_called()


class TestTrackChat:
    @pytest.mark.asyncio
    async def test_registers_tenant(self):
        from agendabot.bot.telegram_bot import track_chat

        bootstrapper = MagicMock()
        bootstrapper.ensure_tenant.return_value = True
        update = _make_update()
        await track_chat(update, _make_context(bootstrapper=bootstrapper))
        bootstrapper.ensure_tenant.assert_called_once_with(CHAT_ID)

    @pytest.mark.asyncio
    async def test_no_chat(self):
        from agendabot.bot.telegram_bot import track_chat

        bootstrapper = MagicMock()
        update = _make_update()
        update.effective_chat = None
        await track_chat(update, _make_context(bootstrapper=bootstrapper))
        bootstrapper.ensure_tenant.assert_not_called()


class TestBuildApp:
    def test_wires_service_and_tick(self, tmp_db_path):
        from agendabot.bot.telegram_bot import build_app, cmd_unknown
        from agendabot.core.action_service import ActionService
        from agendabot.core.scheduler import ReminderScheduler

        with patch("agendabot.bot.telegram_bot.settings.DATABASE_PATH", tmp_db_path):
            app = build_app(notifier=MagicMock())

        assert isinstance(app.bot_data["service"], ActionService)
        assert isinstance(app.bot_data["scheduler"], ReminderScheduler)
        commands = {
            c for h in app.handlers[0] if hasattr(h, "commands") for c in h.commands
        }
        assert {"help", "activities", "listsub", "addact", "extend",
                "removeact", "addsub", "removesub"} <= commands
        last = app.handlers[0][-1]
        assert last.callback is cmd_unknown
        assert len(app.job_queue.get_jobs_by_name("reminder_tick")) == 1
