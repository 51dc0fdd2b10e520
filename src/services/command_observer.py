"""Create tasks from ``!task <title> | <description>`` commands posted in the command channel."""

import math
import re
from typing import Any, Optional

from src.models.event import AuditEvent, BroadcastEvent, BroadcastType, EventType
from src.models.task import Task, TaskStatus
from src.services.dedup_cache import SenderRateLimiter, TTLCache
from src.services.diagnostics import log_diagnostic
from src.services.gateway_link import GatewayLink
from src.services.outbox import Outbox
from src.services.signal_extractor import collect_strings, find_first_key
from src.services.task_store import TaskStore
from src.services.topics import Subscription, Topic
from src.utils.config import TaskCommandConfig, get_task_command_config
from src.utils.ids import epoch_ms
from src.utils.logging import (
    correlation_context,
    generate_correlation_id,
    get_structured_logger,
    mask_sender_id,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)

MIN_TITLE_LENGTH = 3
MAX_TITLE_LENGTH = 140
MIN_DESCRIPTION_LENGTH = 5
MAX_DESCRIPTION_LENGTH = 4000

SESSION_KEY_KEYS = ("sessionKey", "session_key", "key")
SENDER_ID_KEYS = ("senderId", "sender_id", "userId", "user_id", "authorId", "author_id", "fromId", "from_id")
SENDER_ROLE_KEYS = ("senderRole", "sender_role", "authorRole", "author_role", "role")
TEXT_KEYS = ("content", "message", "text", "body")
IGNORED_ROLES = frozenset({"assistant", "system", "tool"})


def extract_command_text(notification: Any, prefix: str) -> Optional[str]:
    """The first string in the notification that starts with ``prefix`` (case-insensitive)."""
    lowered_prefix = prefix.lower()
    candidate = find_first_key(notification, TEXT_KEYS)
    if candidate and candidate.strip().lower().startswith(lowered_prefix):
        return candidate.strip()

    for value in collect_strings(notification):
        trimmed = value.strip()
        if trimmed.lower().startswith(lowered_prefix):
            return trimmed
    return None


def parse_task_command(text: str, prefix: str) -> Optional[tuple[str, str]]:
    """Parse ``<prefix> <title> | <description>`` into (title, description)."""
    pattern = re.compile(rf"^{re.escape(prefix)}\s+([^|]+?)\s*\|\s*([\s\S]+)$", re.IGNORECASE)
    match = pattern.match(text)
    if not match:
        return None

    title = re.sub(r"\s+", " ", match.group(1)).strip()
    description = match.group(2).strip()
    if not MIN_TITLE_LENGTH <= len(title) <= MAX_TITLE_LENGTH:
        return None
    if not MIN_DESCRIPTION_LENGTH <= len(description) <= MAX_DESCRIPTION_LENGTH:
        return None
    return title, description


class CommandObserver:
    """
    Watches the configured chat channel for task commands.

    Configuration is re-read for every notification. Replies are sent as
    ``chat.send`` acks through the outbox; the reader loop never waits on
    them.
    """

    def __init__(
        self,
        store: TaskStore,
        outbox: Outbox,
        link: Optional[GatewayLink] = None,
        broadcasts: Optional[Topic[BroadcastEvent]] = None,
        seen_commands: Optional[TTLCache] = None,
        rate_limiter: Optional[SenderRateLimiter] = None,
        config_loader=get_task_command_config,
    ):
        self.store = store
        self.outbox = outbox
        self.link = link
        self.broadcasts = broadcasts if broadcasts is not None else Topic("tasks.broadcast")
        self.seen_commands = seen_commands if seen_commands is not None else TTLCache()
        self.rate_limiter = rate_limiter if rate_limiter is not None else SenderRateLimiter(0)
        self._config_loader = config_loader

    def attach(self, link: GatewayLink) -> Subscription:
        self.link = link
        return link.notifications.subscribe(self.handle_notification)

    async def handle_notification(self, notification: Any) -> None:
        config = self._config_loader()
        if not config.active:
            return

        session_key = find_first_key(notification, SESSION_KEY_KEYS)
        if session_key is None or session_key.strip() != config.session_key:
            return

        with correlation_context(generate_correlation_id("cmd")):
            try:
                await self._process(notification, config.session_key, config)
            except Exception as e:
                logger.error(
                    "Task command processing failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True
                )
                await log_diagnostic(self.store, "task_command", "failure", "Command processing failed", {"error": str(e)})

    async def _process(self, notification: Any, session_key: str, config: TaskCommandConfig) -> None:
        text = extract_command_text(notification, config.command_prefix)
        if text is None:
            return

        role = find_first_key(notification, SENDER_ROLE_KEYS)
        if role and role.strip().lower() in IGNORED_ROLES:
            return

        sender_id = find_first_key(notification, SENDER_ID_KEYS)
        if sender_id is None:
            await self._reject("Missing sender identity", {"session_key": session_key, "command": text})
            return
        sender_id = sender_id.strip()

        fingerprint = f"{session_key}:{sender_id}:{text.lower()}"
        audit = {"session_key": session_key, "sender_id": sender_id, "command": text}

        if self.seen_commands.check_and_add(fingerprint):
            await self._reject("Duplicate command suppressed", audit)
            return

        logger.info(
            "Task command received",
            session_key=session_key,
            sender_id=mask_sender_id(sender_id),
            command_text=sanitize_message_text(text, max_length=200)
        )

        if config.allowed_user_ids and sender_id not in config.allowed_user_ids:
            await self._reject("Sender not allowlisted", audit)
            self._ack(session_key, "Not authorized to create Mission Control tasks from chat.", fingerprint)
            return

        wait = self.rate_limiter.check(f"{session_key}:{sender_id}", config.min_interval_ms / 1000)
        if wait is not None:
            await self._reject("Rate limit hit", {**audit, "min_interval_ms": config.min_interval_ms})
            self._ack(session_key, f"Rate limit: wait {math.ceil(wait)}s and retry.", fingerprint)
            return

        parsed = parse_task_command(text, config.command_prefix)
        if parsed is None:
            await self._reject("Invalid command format", audit)
            self._ack(
                session_key,
                f"Invalid format. Use: {config.command_prefix} <title> | <description>",
                fingerprint
            )
            return
        title, description = parsed

        open_count = await self.store.count_open_tasks(config.workspace_id)
        if open_count >= config.max_open_tasks:
            await self._reject("Open task threshold reached", {
                **audit,
                "workspace_id": config.workspace_id,
                "open_task_count": open_count,
                "max_open_tasks": config.max_open_tasks,
            })
            self._ack(
                session_key,
                f"Task not created: workspace has {open_count} open tasks (limit {config.max_open_tasks}).",
                fingerprint
            )
            return

        await log_diagnostic(self.store, "task_command", "attempt", "Processing task command", {
            **audit,
            "title": title,
            "workspace_id": config.workspace_id,
        })

        created = await self._create_task(title, description, config)

        self._ack(
            session_key,
            f'Task created: "{created.title}" (id: {created.id}, status: {created.status.value}).',
            fingerprint
        )
        await log_diagnostic(self.store, "task_command", "success", "Task created from chat command", {
            "task_id": created.id,
            "title": created.title,
            "session_key": session_key,
            "sender_id": sender_id,
            "workspace_id": config.workspace_id,
            "priority": created.priority.value,
        })

    async def _create_task(self, title: str, description: str, config: TaskCommandConfig) -> Task:
        creator = await self.store.get_default_creator(config.workspace_id)
        creator_id = creator.id if creator else None
        task = Task(
            title=title,
            description=description,
            status=TaskStatus.INBOX,
            priority=config.default_priority,
            created_by_agent_id=creator_id,
            workspace_id=config.workspace_id,
        )
        event = AuditEvent(
            type=EventType.TASK_CREATED,
            task_id=task.id,
            agent_id=creator_id,
            message=f"Chat command created task: {title}",
        )
        created = await self.store.create_task(task, event)
        logger.info("Task created from command", task_id=created.id, workspace_id=config.workspace_id)

        await self.broadcasts.publish(BroadcastEvent(
            type=BroadcastType.TASK_CREATED,
            payload=created.model_dump(mode="json"),
        ))
        return created

    async def _reject(self, reason: str, metadata: dict[str, Any]) -> None:
        await log_diagnostic(self.store, "task_command", "rejected", reason, metadata)

    def _ack(self, session_key: str, message: str, fingerprint: str) -> None:
        link = self.link
        if link is None:
            logger.warning("No Gateway link attached, dropping command ack", session_key=session_key)
            return
        idempotency_key = f"task-command-ack-{fingerprint}-{epoch_ms()}"
        self.outbox.submit(
            "task_command",
            lambda: link.chat_send(session_key, message, idempotency_key=idempotency_key),
            session_key=session_key
        )
