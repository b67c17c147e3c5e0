"""
Agenda Bot — Telegram Bot.

Each group chat the bot lives in is a tenant with its own activity list.
Everyone can list activities and subjects; only admins may add, extend or
remove them. A repeating job runs the reminder tick once a minute.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import Update
from telegram.constants import ChatType
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from agendabot.config import settings
from agendabot.core.action_service import (
    ActivityListResponse,
    ErrorKind,
    ErrorResponse,
    ResponseKind,
    ServiceResponse,
    SubjectListResponse,
    SuccessResponse,
)
from agendabot.core.parser import ArgumentError, parse_add_args, parse_extend_args

if TYPE_CHECKING:
    from agendabot.core.action_service import ActionService
    from agendabot.core.bootstrap import TenantBootstrapper
    from agendabot.core.clock import Clock
    from agendabot.core.scheduler import ReminderScheduler
    from agendabot.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

ADDACT_USAGE = (
    "Usage: /addact [Activity_Name] [Subject] [Date] [Time]\n\n"
    "Example: /addact Performance_Task_3 English 10/23/2025 10:00pm\n"
    "Example: /addact Quiz_1 Araling Panlipunan 12/01/2025\n\n"
    "💡 Remember: Use underscores (_) for spaces in activity names!"
)
EXTEND_USAGE = (
    "Usage: /extend [Activity_Name] [New_Date] [New_Time]\n\n"
    "Example: /extend Performance_Task_3 10/25/2025 11:59pm"
)
INVALID_TIME = (
    "❌ Invalid time format!\n\n"
    "Use 12-hour format: e.g., 10:00am, 3:30pm, 11:59pm\n"
    "Make sure the time is valid (e.g., not 10:70pm)"
)
INVALID_DATE = (
    "❌ Invalid date format!\n\n"
    "Use: MM/DD/YYYY (e.g., 10/23/2025)\n"
    "Time (optional): 12-hour format (e.g., 10:00pm)"
)
HELP_TEXT = """📋 Bot Commands

Everyone:
/help - Show commands
/activities - View pending activities
/listsub - View subjects

Admins only:
/addact [Name] [Subject] [Date] [Time]
/removeact [Name] - Remove activity
/extend [Name] [Date] [Time]
/addsub [Subject]
/removesub [Subject]

📝 Use _ for spaces in activity names
📅 Date: MM/DD/YYYY | Time: 12hr (e.g. 10:00pm)"""


# ---------------------------------------------------------------------------
# Security: admin-only and group-only decorators
# ---------------------------------------------------------------------------


def admin_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that refuses mutating commands from non-admins."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ADMIN_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Non-admin command attempt from user_id=%s", uid)
            await update.message.reply_text(
                "❌ Sorry, this command is only available for admins!"
            )
            return
        return await func(update, context)

    return wrapper


def group_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator for commands that act on a group's own activity list.

    Private chats are never tenants, so these commands stop here instead
    of registering one.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat = update.effective_chat
        if chat is None or chat.type not in (ChatType.GROUP, ChatType.SUPERGROUP):
            await update.message.reply_text("❌ This command only works in group chats.")
            return
        return await func(update, context)

    return wrapper


def _service(context: ContextTypes.DEFAULT_TYPE) -> ActionService:
    return context.bot_data["service"]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_error(response: ErrorResponse) -> str:
    if response.error is ErrorKind.INVALID_INPUT and response.field_name == "time":
        return INVALID_TIME
    if response.error is ErrorKind.INVALID_INPUT and response.field_name == "date":
        return INVALID_DATE
    if response.field_name == "subject" and response.choices:
        available = "\n".join(f"• {s}" for s in response.choices)
        return (
            f"❌ {response.message}\n\nAvailable subjects:\n{available}\n\n"
            "Use /addsub to add a new subject."
        )
    return f"❌ {response.message}"


def render_activity_list(response: ActivityListResponse) -> str:
    if not response.groups:
        return "📭 No pending activities."

    lines = ["📋 Pending Activities"]
    for group in response.groups:
        lines.append(f"\n📚 {group.subject}")
        for info in group.activities:
            d = info.deadline
            when = f"{info.day_name}, {d.strftime('%b')} {d.day}, {d.year}"
            if info.time_label:
                when += f" {info.time_label}"
            lines.append(f"- {info.display_name}\n  {when}\n  ⏳ {info.countdown}")
    return "\n".join(lines)


def render_subject_list(response: SubjectListResponse) -> str:
    if not response.subjects:
        return "📭 No subjects registered yet!"
    rule = "━" * 25
    body = "\n".join(f"{i}. {s}" for i, s in enumerate(response.subjects, start=1))
    return f"📚 ACTIVE SUBJECTS\n{rule}\n\n{body}\n\n{rule}"


def render_added(response: SuccessResponse) -> str:
    info = response.activity
    return (
        "✅ Activity added successfully!\n\n"
        f"📝 Activity: {info.display_name}\n"
        f"📚 Subject: {info.subject}\n"
        f"📅 Deadline: {info.deadline_text}"
    )


def render_extended(response: SuccessResponse) -> str:
    info = response.activity
    return (
        "✅ Deadline extended!\n\n"
        f"📝 Activity: {info.display_name}\n"
        f"📚 Subject: {info.subject}\n"
        f"📅 Old Deadline: {response.previous_deadline_text}\n"
        f"📅 New Deadline: {info.deadline_text}"
    )


async def _reply(
    update: Update,
    response: ServiceResponse,
    on_success: Callable[[SuccessResponse], str] | None = None,
) -> None:
    if isinstance(response, ErrorResponse):
        text = render_error(response)
    elif on_success is not None and isinstance(response, SuccessResponse):
        text = on_success(response)
    else:
        text = f"✅ {response.message}"
    await update.message.reply_text(text)


# ---------------------------------------------------------------------------
# Tenant tracking
# ---------------------------------------------------------------------------


async def track_chat(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Register the group as a tenant the first time anything arrives from it."""
    chat = update.effective_chat
    if chat is None:
        return
    bootstrapper: TenantBootstrapper = context.bot_data["bootstrapper"]
    if bootstrapper.ensure_tenant(chat.id):
        logger.info("New group tenant: %d (%s)", chat.id, getattr(chat, "title", ""))


# ---------------------------------------------------------------------------
# Commands — everyone
# ---------------------------------------------------------------------------


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list commands."""
    await update.message.reply_text(HELP_TEXT)


@group_only
async def cmd_activities(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /activities — pending activities grouped by subject."""
    response = _service(context).list_activities(update.effective_chat.id)
    if isinstance(response, ErrorResponse):
        await update.message.reply_text(render_error(response))
        return
    await update.message.reply_text(render_activity_list(response))


async def cmd_listsub(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /listsub — registered subjects."""
    response = _service(context).list_subjects()
    await update.message.reply_text(render_subject_list(response))


# ---------------------------------------------------------------------------
# Commands — admins
# ---------------------------------------------------------------------------


@group_only
@admin_only
async def cmd_addact(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addact NAME SUBJECT... DATE [TIME]."""
    service = _service(context)
    args = context.args or []
    subjects = service.list_subjects().subjects

    try:
        command = parse_add_args(args, subjects)
    except ArgumentError as exc:
        if exc.reason == "no_date":
            text = (
                "❌ No valid date found!\n\n"
                "Please include a date in MM/DD/YYYY format (e.g., 12/01/2025)\n\n"
                + ADDACT_USAGE
            )
        elif exc.reason == "missing_name_or_subject":
            text = "❌ Missing activity name or subject!\n\n" + ADDACT_USAGE
        elif exc.reason == "unknown_subject":
            text = render_error(ErrorResponse(
                kind=ResponseKind.ERROR,
                message=f'Subject "{exc.detail}" not found!',
                error=ErrorKind.NOT_FOUND,
                field_name="subject",
                choices=subjects,
            ))
        else:
            text = "❌ Invalid format!\n\n" + ADDACT_USAGE
        await update.message.reply_text(text)
        return

    response = service.add_activity(
        update.effective_chat.id,
        update.effective_user.id,
        command.name,
        command.subject,
        command.date,
        command.time,
    )
    await _reply(update, response, render_added)


@group_only
@admin_only
async def cmd_extend(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /extend NAME DATE [TIME]."""
    try:
        command = parse_extend_args(context.args or [])
    except ArgumentError:
        await update.message.reply_text("❌ Invalid format!\n\n" + EXTEND_USAGE)
        return

    response = _service(context).extend_activity(
        update.effective_chat.id,
        update.effective_user.id,
        command.name,
        command.date,
        command.time,
    )
    await _reply(update, response, render_extended)


@group_only
@admin_only
async def cmd_removeact(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /removeact NAME."""
    if not context.args:
        await update.message.reply_text(
            "❌ Please provide the activity name.\n\nUsage: /removeact [Activity_Name]"
        )
        return
    response = _service(context).remove_activity(update.effective_chat.id, context.args[0])
    await _reply(update, response)


@admin_only
async def cmd_addsub(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addsub SUBJECT..."""
    if not context.args:
        await update.message.reply_text(
            "❌ Please provide a subject name!\n\n"
            "Usage: /addsub [Subject_Name]\nExample: /addsub Research"
        )
        return
    response = _service(context).add_subject(" ".join(context.args))
    await _reply(update, response)


@admin_only
async def cmd_removesub(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /removesub SUBJECT..."""
    if not context.args:
        await update.message.reply_text(
            "❌ Please provide a subject name!\n\n"
            "Usage: /removesub [Subject_Name]\nExample: /removesub Research"
        )
        return
    response = _service(context).remove_subject(" ".join(context.args))
    await _reply(update, response)


async def cmd_unknown(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reply to any command no other handler took."""
    command, _, target = update.message.text.split()[0].partition("@")
    if target and target.lower() != (context.bot.username or "").lower():
        return  # addressed to another bot in the group
    await update.message.reply_text(
        f"❌ Unknown command: {command}\n\nType /help for available commands."
    )


async def _on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log handler failures and tell the chat something went wrong."""
    logger.error("Error while handling update: %s", context.error, exc_info=context.error)
    if isinstance(update, Update) and update.effective_message is not None:
        await update.effective_message.reply_text(
            "❌ An error occurred while executing this command. Please try again."
        )


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(notifier: NotificationPort | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    from agendabot.core.action_service import ActionService
    from agendabot.core.bootstrap import TenantBootstrapper
    from agendabot.core.clock import Clock
    from agendabot.core.reminders import ReminderSchedule
    from agendabot.core.scheduler import ReminderScheduler
    from agendabot.data.db import ActivityDB, SubjectDB
    from agendabot.data.legacy import LegacySnapshot

    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_shutdown(_drain_deliveries)
        .build()
    )

    if notifier is None:
        from agendabot.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    clock = Clock(settings.TIMEZONE)
    store = ActivityDB(settings.DATABASE_PATH, settings.TIMEZONE)
    subjects = SubjectDB(settings.DATABASE_PATH)
    legacy = LegacySnapshot(settings.LEGACY_ACTIVITIES_PATH, settings.TIMEZONE)
    bootstrapper = TenantBootstrapper(
        store, clock, legacy=legacy, migrate_legacy=settings.MIGRATE_LEGACY,
    )
    scheduler = ReminderScheduler(
        store,
        notifier,
        clock,
        schedule=ReminderSchedule.from_settings(settings),
        bootstrapper=bootstrapper,
    )

    # Shared objects for handler access
    app.bot_data["service"] = ActionService(store, subjects, clock, bootstrapper)
    app.bot_data["bootstrapper"] = bootstrapper
    app.bot_data["scheduler"] = scheduler

    # Register group chats before any command runs
    app.add_handler(MessageHandler(filters.ChatType.GROUPS, track_chat), group=-1)

    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("start", cmd_help))
    app.add_handler(CommandHandler("activities", cmd_activities))
    app.add_handler(CommandHandler("listsub", cmd_listsub))
    app.add_handler(CommandHandler("addact", cmd_addact))
    app.add_handler(CommandHandler("extend", cmd_extend))
    app.add_handler(CommandHandler("removeact", cmd_removeact))
    app.add_handler(CommandHandler("addsub", cmd_addsub))
    app.add_handler(CommandHandler("removesub", cmd_removesub))
    # Must come after every CommandHandler
    app.add_handler(MessageHandler(filters.COMMAND, cmd_unknown))
    app.add_error_handler(_on_error)

    _setup_reminder_tick(app, scheduler, clock)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_reminder_tick(app: Application, scheduler: ReminderScheduler, clock: Clock) -> None:
    """Register the repeating reminder tick, aligned to minute boundaries."""
    from agendabot.core.scheduler import seconds_until_next_minute

    async def _tick_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await scheduler.run_tick()

    app.job_queue.run_repeating(
        _tick_callback,
        interval=settings.TICK_INTERVAL_SECONDS,
        first=seconds_until_next_minute(clock.now()),
        name="reminder_tick",
        job_kwargs={"max_instances": 1, "coalesce": True},
    )

    logger.info(
        "Reminder tick scheduled every %ds (%s)",
        settings.TICK_INTERVAL_SECONDS,
        settings.TIMEZONE,
    )


async def _drain_deliveries(app: Application) -> None:
    scheduler: ReminderScheduler | None = app.bot_data.get("scheduler")
    if scheduler is not None:
        await scheduler.wait_for_deliveries()


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Agenda Bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
