"""Writes the messages of a finished turn to storage, once per logical message."""

from dataclasses import dataclass, field

from clark.models.messages import UIMessage
from clark.services.repositories import MessageRepository
from clark.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConversationSnapshot:
    """Ids of the messages stored before the turn started."""

    conversation_id: str
    message_ids: set[str] = field(default_factory=set)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self.message_ids


@dataclass
class ReconcileReport:
    saved: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class PersistenceReconciler:
    """Upserts new turn messages by external id.

    A message is new when its id is not in the snapshot taken at turn start.
    Each message is written independently: one failure is logged and the
    rest of the batch is still written. Nothing is retried here; replaying
    the same turn converges because the upsert is idempotent.
    """

    def __init__(self, messages: MessageRepository):
        self.messages = messages
        self._snapshots: dict[str, ConversationSnapshot] = {}

    async def take_snapshot(self, conversation_id: str) -> ConversationSnapshot:
        stored = await self.messages.list_by_conversation_id(conversation_id)
        ids: set[str] = set()
        for message in stored:
            ids.add(message.id)
            if message.external_id:
                ids.add(message.external_id)

        snapshot = ConversationSnapshot(conversation_id=conversation_id, message_ids=ids)
        self._snapshots[conversation_id] = snapshot
        return snapshot

    async def reconcile(
        self,
        turn_messages: list[UIMessage],
        conversation_id: str,
        snapshot: ConversationSnapshot | None = None,
    ) -> ReconcileReport:
        snapshot = snapshot or self._snapshots.pop(conversation_id, None)
        if snapshot is None:
            snapshot = ConversationSnapshot(conversation_id=conversation_id)

        report = ReconcileReport()
        for message in turn_messages:
            if message.id in snapshot:
                report.skipped.append(message.id)
                continue

            try:
                await self.messages.upsert_by_external_id(
                    external_id=message.id,
                    conversation_id=conversation_id,
                    role=message.role,
                    parts=message.parts,
                    metadata=message.metadata,
                )
                report.saved.append(message.id)
            except Exception as e:
                logger.error(f"Failed to persist message {message.id} in {conversation_id}: {e}", exc_info=True)
                report.failed.append(message.id)

        logger.info(
            f"Reconciled conversation {conversation_id}: "
            f"{len(report.saved)} saved, {len(report.skipped)} unchanged, {len(report.failed)} failed"
        )
        return report
