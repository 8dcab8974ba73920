# tokrelay/core/forwarder.py
from __future__ import annotations

from typing import Iterable, Optional

from tokrelay.core.domain import AckSignal, InboundMessage, QueuePayload
from tokrelay.core.errors import ForwardingError
from tokrelay.core.ports import (
    ChannelProvisioner,
    MappingRepository,
    MessageAcknowledger,
    QueueRepository,
)
from tokrelay.core.recognizer import extract_notification, sanitize_destination_name
from tokrelay.infra.logging_config import get_logger
from tokrelay.infra.metrics import RelayMetrics

logger = get_logger(__name__)


class Forwarder:
    """
    Ingestion use case.
    Workflow: allow-list -> recognition -> destination -> enqueue -> acknowledge.

    Delivery itself happens later in the queue processor; this class only
    has to get a durable job into the queue.
    """

    def __init__(
        self,
        *,
        mappings: MappingRepository,
        queue: QueueRepository,
        provisioner: ChannelProvisioner,
        acknowledger: MessageAcknowledger,
        allowed_author_ids: Iterable[str],
        core_server_id: Optional[str],
        fallback_channel_id: Optional[str] = None,
        auto_create_parent_id: Optional[str] = None,
    ) -> None:
        self.mappings = mappings
        self.queue = queue
        self.provisioner = provisioner
        self.acknowledger = acknowledger
        self.allowed_author_ids = frozenset(str(a) for a in allowed_author_ids)
        self.core_server_id = core_server_id
        self.fallback_channel_id = fallback_channel_id
        self.auto_create_parent_id = auto_create_parent_id

    def is_allowed(self, message: InboundMessage) -> bool:
        return str(message.author_id) in self.allowed_author_ids

    def is_cross_origin(self, message: InboundMessage) -> bool:
        return message.guild_id is None or str(message.guild_id) != str(self.core_server_id)

    async def process_message(self, message: InboundMessage) -> Optional[int]:
        """
        Handle one inbound message.

        Returns the queue job id, or None when the message was ignored
        (author not allowed, nothing recognized, no destination).

        Raises:
            ForwardingError: destination lookup or enqueue failed (message
                acknowledged with ❌)
        """
        if not self.is_allowed(message):
            return None

        notification = extract_notification(message)
        if notification is None:
            logger.debug(
                "No notification recognized",
                extra={"message_id": message.message_id},
            )
            return None

        try:
            destination = await self.resolve_destination(notification.username)
        except Exception as exc:
            logger.error(
                f"Destination lookup failed for @{notification.username}: {exc}",
                exc_info=True,
                extra={"username": notification.username, "message_id": message.message_id},
            )
            RelayMetrics.notification_dropped("store_error")
            await self._acknowledge(message, AckSignal.ERROR)
            raise ForwardingError(f"destination lookup failed for @{notification.username}") from exc

        if destination is None:
            logger.warning(
                f"No destination for @{notification.username}: no mapping and no fallback channel",
                extra={"username": notification.username, "message_id": message.message_id},
            )
            RelayMetrics.notification_dropped("no_destination")
            await self._acknowledge(message, AckSignal.ERROR)
            return None

        channel_id, role_id = destination
        cross_origin = self.is_cross_origin(message)
        payload = QueuePayload(
            url=notification.url,
            username=notification.username,
            channel_id=channel_id,
            role_id=role_id,
            notification=notification,
            source_label=message.guild_name if cross_origin else None,
            is_cross_origin=cross_origin,
        )

        try:
            job_id = await self.queue.enqueue(payload.to_dict())
        except Exception as exc:
            logger.error(
                f"Failed to enqueue notification for @{notification.username}: {exc}",
                exc_info=True,
                extra={"username": notification.username, "message_id": message.message_id},
            )
            RelayMetrics.notification_dropped("enqueue_error")
            await self._acknowledge(message, AckSignal.ERROR)
            raise ForwardingError(f"enqueue failed for @{notification.username}") from exc

        logger.info(
            f"Queued {notification.content_type.value} notification: "
            f"@{notification.username} -> {channel_id} (job={job_id}, cross_origin={cross_origin})",
            extra={"job_id": job_id, "username": notification.username},
        )
        RelayMetrics.notification_queued("cross" if cross_origin else "core")

        await self._acknowledge(
            message,
            AckSignal.CROSS_ORIGIN if cross_origin else AckSignal.PRIMARY_ORIGIN,
        )
        return job_id

    async def resolve_destination(self, username: str) -> Optional[tuple[str, Optional[str]]]:
        """
        (channel_id, role_id) for a username, auto-provisioning when unmapped.

        Provisioning problems degrade to the fallback channel; a failed
        mapping lookup propagates. Returns None only when there is no
        fallback either.
        """
        mapping = await self.mappings.find_by_username(username)
        if mapping is not None:
            return mapping.channel_id, mapping.role_id

        channel_id = await self.provision(username)
        if channel_id is not None:
            return channel_id, None

        if self.fallback_channel_id:
            return self.fallback_channel_id, None
        return None

    async def provision(self, username: str) -> Optional[str]:
        """Create and persist a destination channel; None means use the fallback."""
        name = sanitize_destination_name(username)
        if name is None:
            logger.info(
                f"Username @{username} has no usable letters, using fallback channel",
                extra={"username": username},
            )
            return None

        try:
            channel_id = await self.provisioner.create_text_channel(name, self.auto_create_parent_id)
        except Exception as exc:
            logger.warning(
                f"Auto-provisioning failed for @{username}, using fallback channel: {exc}",
                extra={"username": username},
            )
            RelayMetrics.provisioning_failed("create")
            return None

        RelayMetrics.channel_provisioned()
        logger.info(
            f"Provisioned #{name} ({channel_id}) for @{username}",
            extra={"username": username},
        )

        # The channel exists either way; deliver there even if it stays unmapped
        try:
            await self.mappings.upsert(username, channel_id)
        except Exception as exc:
            logger.error(
                f"Channel {channel_id} created for @{username} but mapping not saved: {exc}",
                extra={"username": username},
            )
            RelayMetrics.provisioning_failed("persist")

        return channel_id

    async def _acknowledge(self, message: InboundMessage, signal: AckSignal) -> None:
        try:
            await self.acknowledger.acknowledge(message, signal)
        except Exception as exc:
            logger.warning(
                f"Failed to acknowledge message with {signal.value}: {exc}",
                extra={"message_id": message.message_id},
            )
