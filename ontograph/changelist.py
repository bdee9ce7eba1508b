"""
Ontology changelists: proposed ontology versions and their approval workflow.

A changelist snapshots a container's ontology at a base version. Its payload
never changes after creation; only the name and status move, and status moves
only along the transitions below.
"""
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Union

from .errors import ConflictError, NotFoundError, ValidationError
from .models import CHANGELIST_STATUSES, Changelist, ChangelistApproval, ChangelistRecord
from .ontology import OntologyStore
from .transaction import Transaction

ACTIVE_STATUSES = ('pending', 'approved', 'ready')

TRANSITIONS: Dict[str, tuple] = {
    'pending': ('approved', 'rejected', 'ready', 'deprecated'),
    'approved': ('ready', 'applied', 'rejected', 'deprecated'),
    'ready': ('approved', 'applied', 'rejected', 'deprecated'),
    'rejected': ('pending', 'deprecated'),
    'applied': (),
    'deprecated': (),
}


def check_transition(current: str, status: str) -> None:
    if status not in CHANGELIST_STATUSES:
        raise ValidationError(f"status '{status}' must be one of {', '.join(CHANGELIST_STATUSES)}")
    if status != current and status not in TRANSITIONS.get(current, ()):
        raise ValidationError(f"changelist cannot move from '{current}' to '{status}'")


#
# MAPPERS
#
class ChangelistMapper(ABC):
    @abstractmethod
    async def create(self, user_id: str, record: ChangelistRecord) -> ChangelistRecord:
        pass

    @abstractmethod
    async def retrieve(self, changelist_id: str) -> ChangelistRecord:
        pass

    @abstractmethod
    async def update(self, user_id: str, record: ChangelistRecord) -> ChangelistRecord:
        """Persist name and status changes. The payload is never written."""
        pass

    @abstractmethod
    async def set_status(self, changelist_id: str, user_id: str, status: str,
                         applied_at: Optional[datetime] = None, transaction: Optional[Transaction] = None) -> bool:
        pass

    @abstractmethod
    async def delete(self, changelist_id: str) -> bool:
        pass

    @abstractmethod
    async def list(self, container_id: Optional[str] = None, status: Union[str, List[str], None] = None,
                   created_by: Optional[str] = None, limit: Optional[int] = None,
                   offset: Optional[int] = None) -> List[ChangelistRecord]:
        """List records without their payload."""
        pass


class ChangelistApprovalMapper(ABC):
    @abstractmethod
    async def create(self, user_id: str, approval: ChangelistApproval) -> ChangelistApproval:
        pass

    @abstractmethod
    async def delete_by_changelist(self, changelist_id: str) -> bool:
        pass

    @abstractmethod
    async def list_for_changelist(self, changelist_id: str) -> List[ChangelistApproval]:
        pass


class LocalChangelistMapper(ChangelistMapper):
    def __init__(self):
        self.records: Dict[str, ChangelistRecord] = {}

    async def create(self, user_id: str, record: ChangelistRecord) -> ChangelistRecord:
        record = copy.deepcopy(record)
        now = datetime.now()
        record.id = str(uuid.uuid4())
        record.created_at, record.created_by = now, user_id
        record.modified_at, record.modified_by = now, user_id
        self.records[record.id] = record
        return copy.deepcopy(record)

    async def retrieve(self, changelist_id: str) -> ChangelistRecord:
        if changelist_id not in self.records:
            raise NotFoundError(f"changelist {changelist_id} not found")
        return copy.deepcopy(self.records[changelist_id])

    async def update(self, user_id: str, record: ChangelistRecord) -> ChangelistRecord:
        stored = self.records.get(record.id)
        if stored is None:
            raise NotFoundError(f"changelist {record.id} not found")
        stored.name = record.name
        stored.status = record.status
        stored.applied_at = record.applied_at
        stored.modified_at, stored.modified_by = datetime.now(), user_id
        return copy.deepcopy(stored)

    async def set_status(self, changelist_id: str, user_id: str, status: str,
                         applied_at: Optional[datetime] = None, transaction: Optional[Transaction] = None) -> bool:
        stored = self.records.get(changelist_id)
        if stored is None:
            raise NotFoundError(f"changelist {changelist_id} not found")
        previous = (stored.status, stored.applied_at, stored.modified_at, stored.modified_by)

        def undo():
            stored.status, stored.applied_at, stored.modified_at, stored.modified_by = previous

        stored.status = status
        if applied_at is not None:
            stored.applied_at = applied_at
        stored.modified_at, stored.modified_by = datetime.now(), user_id
        if transaction is not None:
            transaction.add_rollback(undo)
        return True

    async def delete(self, changelist_id: str) -> bool:
        return self.records.pop(changelist_id, None) is not None

    async def list(self, container_id: Optional[str] = None, status: Union[str, List[str], None] = None,
                   created_by: Optional[str] = None, limit: Optional[int] = None,
                   offset: Optional[int] = None) -> List[ChangelistRecord]:
        statuses = [status] if isinstance(status, str) else status
        results = []
        for record in self.records.values():
            if container_id is not None and record.container_id != container_id:
                continue
            if statuses is not None and record.status not in statuses:
                continue
            if created_by is not None and record.created_by != created_by:
                continue
            projected = copy.deepcopy(record)
            projected.changelist = None
            results.append(projected)
        start = offset or 0
        return results[start:start + limit] if limit is not None else results[start:]


class LocalChangelistApprovalMapper(ChangelistApprovalMapper):
    def __init__(self):
        self.approvals: Dict[str, ChangelistApproval] = {}

    async def create(self, user_id: str, approval: ChangelistApproval) -> ChangelistApproval:
        approval = copy.deepcopy(approval)
        approval.id = str(uuid.uuid4())
        approval.approved_by = approval.approved_by or user_id
        approval.approved_at = approval.approved_at or datetime.now()
        self.approvals[approval.id] = approval
        return copy.deepcopy(approval)

    async def delete_by_changelist(self, changelist_id: str) -> bool:
        self.approvals = {k: a for k, a in self.approvals.items() if a.changelist_id != changelist_id}
        return True

    async def list_for_changelist(self, changelist_id: str) -> List[ChangelistApproval]:
        return [copy.deepcopy(a) for a in self.approvals.values() if a.changelist_id == changelist_id]


#
# REPOSITORY
#
class ChangelistRepository:
    def __init__(self, ontology: OntologyStore, mapper: Optional[ChangelistMapper] = None,
                 approval_mapper: Optional[ChangelistApprovalMapper] = None):
        self.ontology = ontology
        self.mapper = mapper or LocalChangelistMapper()
        self.approval_mapper = approval_mapper or LocalChangelistApprovalMapper()
        self.logger = logging.getLogger("ChangelistRepository")

    async def find_by_id(self, changelist_id: str) -> ChangelistRecord:
        return await self.mapper.retrieve(changelist_id)

    async def delete(self, record: ChangelistRecord) -> bool:
        if not record.id:
            raise ValidationError("record must have id")
        return await self.mapper.delete(record.id)

    async def save(self, record: ChangelistRecord, user_id: str) -> ChangelistRecord:
        """Create a changelist, or update the name and status of an existing one."""
        errors = record.validation_errors()
        if errors:
            raise ValidationError(f"changelist does not pass validation {','.join(errors)}", errors)

        if record.id:
            original = await self.mapper.retrieve(record.id)
            check_transition(original.status, record.status)
            original.name = record.name
            if record.status == 'applied' and original.status != 'applied':
                original.applied_at = datetime.now()
            original.status = record.status
            updated = await self.mapper.update(user_id, original)
            record.modified_at, record.modified_by = updated.modified_at, updated.modified_by
            record.applied_at = updated.applied_at
            return updated

        active = await self.mapper.list(container_id=record.container_id, status=list(ACTIVE_STATUSES))
        if any(c.base_ontology_version_id == record.base_ontology_version_id for c in active):
            raise ConflictError(
                f"an active changelist already exists for container {record.container_id} "
                f"and ontology version {record.base_ontology_version_id}")

        await self.populate_changelist(record)
        created = await self.mapper.create(user_id, record)
        record.id = created.id
        record.created_at, record.created_by = created.created_at, created.created_by
        record.modified_at, record.modified_by = created.modified_at, created.modified_by
        self.logger.info(f"Created changelist '{created.name}' ({created.id}) for container {created.container_id}")
        return created

    async def populate_changelist(self, record: ChangelistRecord) -> ChangelistRecord:
        """Snapshot the container's ontology at the record's base version into its payload."""
        version = record.base_ontology_version_id
        metatypes = await self.ontology.list_metatypes(record.container_id, with_keys=True,
                                                       ontology_version_id=version)
        relationships = await self.ontology.list_relationships(record.container_id, ontology_version_id=version)
        pairs = await self.ontology.list_relationship_pairs(record.container_id, ontology_version_id=version)
        record.changelist = Changelist.snapshot(metatypes, relationships, pairs)
        return record

    async def set_status(self, changelist_id: str, user_id: str, status: str,
                         transaction: Optional[Transaction] = None) -> bool:
        current = await self.mapper.retrieve(changelist_id)
        check_transition(current.status, status)
        applied_at = datetime.now() if status == 'applied' and current.status != 'applied' else None
        return await self.mapper.set_status(changelist_id, user_id, status, applied_at=applied_at,
                                            transaction=transaction)

    async def approve_changelist(self, approver_id: str, changelist_id: str) -> ChangelistApproval:
        """Mark the changelist approved and record the approval; neither happens without the other."""
        transaction = Transaction()
        try:
            await self.set_status(changelist_id, approver_id, 'approved', transaction=transaction)
            approval = await self.approval_mapper.create(
                approver_id, ChangelistApproval(changelist_id=changelist_id, approved_by=approver_id))
            await transaction.commit()
        except Exception:
            await transaction.rollback()
            raise
        return approval

    async def revoke_approval(self, changelist_id: str, approver_id: str) -> bool:
        transaction = Transaction()
        try:
            await self.set_status(changelist_id, approver_id, 'rejected', transaction=transaction)
            revoked = await self.approval_mapper.delete_by_changelist(changelist_id)
            await transaction.commit()
        except Exception:
            await transaction.rollback()
            raise
        return revoked

    async def list_approvals(self, changelist_id: str) -> List[ChangelistApproval]:
        return await self.approval_mapper.list_for_changelist(changelist_id)

    async def list(self, container_id: Optional[str] = None, status: Union[str, List[str], None] = None,
                   created_by: Optional[str] = None, limit: Optional[int] = None,
                   offset: Optional[int] = None) -> List[ChangelistRecord]:
        return await self.mapper.list(container_id=container_id, status=status, created_by=created_by,
                                      limit=limit, offset=offset)

    async def count(self, container_id: Optional[str] = None, status: Union[str, List[str], None] = None,
                    created_by: Optional[str] = None) -> int:
        return len(await self.mapper.list(container_id=container_id, status=status, created_by=created_by))
