"""
journey_kernel.services.definition_service -- Journey definition store.

Responsibility:
    Publishes, activates, looks up and (administratively) deletes
    versioned journey definitions, and serves the indexed JourneyGraph
    for a pinned version from a process-wide cache.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Definitions are validated eagerly at publish; a definition that
      fails validation is never stored.
    - At most one active version per (tenant, code).  Activation locks
      every version row of the code, clears the old flag and flushes,
      then sets the new one, all in the caller's transaction.  Readers
      see either the old or the new active version, never zero or two.
    - Published content is immutable, so a cached graph never goes stale.

Failure modes:
    - DefinitionValidationError: publish-time violations (all of them).
    - DefinitionVersionExistsError: (tenant, code, version) already stored.
    - DefinitionNotFoundError: activation or graph lookup of a missing version.
    - DefinitionInUseError: deleting a version pinned by instances.
"""

from __future__ import annotations

import threading
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from journey_kernel.domain.clock import Clock
from journey_kernel.domain.journey import (
    JourneyDefinition,
    JourneyGraph,
    validate_definition,
)
from journey_kernel.exceptions import (
    DefinitionInUseError,
    DefinitionNotFoundError,
    DefinitionValidationError,
    DefinitionVersionExistsError,
)
from journey_kernel.logging_config import get_logger
from journey_kernel.models.definition import JourneyDefinitionModel
from journey_kernel.models.instance import JourneyInstanceModel
from journey_kernel.services.base import BaseService

logger = get_logger("services.definition")

GraphKey = tuple[str, str, str]


class JourneyGraphCache:
    """Lock-guarded cache of JourneyGraph keyed by (tenant, code, version)."""

    def __init__(self) -> None:
        self._graphs: dict[GraphKey, JourneyGraph] = {}
        self._lock = threading.Lock()

    def get(self, key: GraphKey) -> JourneyGraph | None:
        with self._lock:
            return self._graphs.get(key)

    def put(self, graph: JourneyGraph) -> JourneyGraph:
        """Store ``graph`` unless another thread got there first; return the winner."""
        with self._lock:
            return self._graphs.setdefault(graph.key, graph)

    def clear(self) -> None:
        with self._lock:
            self._graphs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._graphs)


_DEFAULT_GRAPH_CACHE = JourneyGraphCache()


def default_graph_cache() -> JourneyGraphCache:
    """The process-wide graph cache shared by all services."""
    return _DEFAULT_GRAPH_CACHE


class JourneyDefinitionService(BaseService[JourneyDefinitionModel]):
    """Definition store with publish-time validation and atomic activation."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        graph_cache: JourneyGraphCache | None = None,
    ):
        super().__init__(session, clock)
        self._graphs = graph_cache if graph_cache is not None else _DEFAULT_GRAPH_CACHE

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def publish(
        self,
        definition: JourneyDefinition,
        actor_id: str | None = None,
        activate: bool = False,
    ) -> JourneyDefinition:
        """Validate and persist a new definition version.

        Returns the stored definition (with id and content hash).  When
        ``activate`` is set the new version replaces the active one.
        """
        violations = validate_definition(definition)
        if violations:
            logger.warning(
                "journey_definition_rejected",
                extra={
                    "tenant_id": definition.tenant_id,
                    "journey_code": definition.code,
                    "journey_version": definition.version,
                    "violations": violations,
                },
            )
            raise DefinitionValidationError(definition.code, definition.version, violations)

        if self._load(definition.tenant_id, definition.code, definition.version) is not None:
            raise DefinitionVersionExistsError(
                definition.tenant_id, definition.code, definition.version,
            )

        content_hash = definition.compute_content_hash()
        model = JourneyDefinitionModel.from_dto(
            definition,
            content_hash=content_hash,
            created_at=self.clock.now(),
            published_by=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(model)
                self.session.flush()
        except IntegrityError:
            raise DefinitionVersionExistsError(
                definition.tenant_id, definition.code, definition.version,
            ) from None

        logger.info(
            "journey_definition_published",
            extra={
                "tenant_id": definition.tenant_id,
                "journey_code": definition.code,
                "journey_version": definition.version,
                "content_hash": content_hash,
                "state_count": len(definition.states),
                "transition_count": len(definition.transitions),
                "actor_id": actor_id,
            },
        )

        if activate:
            return self.activate(
                definition.tenant_id, definition.code, definition.version, actor_id,
            )
        return model.to_dto()

    def activate(
        self,
        tenant_id: str,
        code: str,
        version: str,
        actor_id: str | None = None,
    ) -> JourneyDefinition:
        """Make ``version`` the single active definition of ``code``."""
        rows = self._lock_versions(tenant_id, code)
        target = next((r for r in rows if r.version == version), None)
        if target is None:
            raise DefinitionNotFoundError(tenant_id, code, version)

        now = self.clock.now()
        previous = [r for r in rows if r.is_active and r is not target]
        for row in previous:
            row.is_active = False
            row.updated_at = now
        if previous:
            # The old flag must be cleared before the partial unique
            # index sees the new one.
            self.session.flush()

        if not target.is_active:
            target.is_active = True
            target.updated_at = now
            self.session.flush()

        logger.info(
            "journey_definition_activated",
            extra={
                "tenant_id": tenant_id,
                "journey_code": code,
                "journey_version": version,
                "previous_versions": [r.version for r in previous],
                "actor_id": actor_id,
            },
        )
        return target.to_dto()

    def deactivate(
        self,
        tenant_id: str,
        code: str,
        actor_id: str | None = None,
    ) -> JourneyDefinition | None:
        """Clear the active flag of ``code``; returns the deactivated version."""
        rows = self._lock_versions(tenant_id, code)
        active = next((r for r in rows if r.is_active), None)
        if active is None:
            return None
        active.is_active = False
        active.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "journey_definition_deactivated",
            extra={
                "tenant_id": tenant_id,
                "journey_code": code,
                "journey_version": active.version,
                "actor_id": actor_id,
            },
        )
        return active.to_dto()

    def delete(self, tenant_id: str, definition_id: UUID) -> None:
        """Administratively delete a definition version.

        Raises DefinitionInUseError while any instance pins the version.
        The before_flush hook in db/immutability.py enforces the same rule
        for deletes that bypass this method.
        """
        model = self.session.execute(
            select(JourneyDefinitionModel).where(
                JourneyDefinitionModel.id == definition_id,
                JourneyDefinitionModel.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise DefinitionNotFoundError(tenant_id, str(definition_id))

        pinned = self.session.execute(
            select(func.count(JourneyInstanceModel.id)).where(
                JourneyInstanceModel.tenant_id == tenant_id,
                JourneyInstanceModel.journey_code == model.code,
                JourneyInstanceModel.journey_version == model.version,
            )
        ).scalar_one()
        if pinned:
            raise DefinitionInUseError(model.code, model.version, pinned)

        self.session.delete(model)
        self.session.flush()
        logger.info(
            "journey_definition_deleted",
            extra={
                "tenant_id": tenant_id,
                "journey_code": model.code,
                "journey_version": model.version,
            },
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_active(self, tenant_id: str, code: str) -> JourneyDefinition | None:
        model = self.session.execute(
            select(JourneyDefinitionModel).where(
                JourneyDefinitionModel.tenant_id == tenant_id,
                JourneyDefinitionModel.code == code,
                JourneyDefinitionModel.is_active.is_(True),
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find_by_code(
        self,
        tenant_id: str,
        code: str,
        version: str | None = None,
    ) -> JourneyDefinition | None:
        """Find a version of ``code``; the most recently published one if omitted."""
        if version is not None:
            model = self._load(tenant_id, code, version)
        else:
            model = self.session.execute(
                select(JourneyDefinitionModel)
                .where(
                    JourneyDefinitionModel.tenant_id == tenant_id,
                    JourneyDefinitionModel.code == code,
                )
                .order_by(
                    JourneyDefinitionModel.created_at.desc(),
                    JourneyDefinitionModel.version.desc(),
                )
                .limit(1)
            ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find_by_id(self, definition_id: UUID) -> JourneyDefinition | None:
        model = self.session.get(JourneyDefinitionModel, definition_id)
        return model.to_dto() if model is not None else None

    def list(self, tenant_id: str, code: str | None = None) -> list[JourneyDefinition]:
        stmt = select(JourneyDefinitionModel).where(
            JourneyDefinitionModel.tenant_id == tenant_id,
        )
        if code is not None:
            stmt = stmt.where(JourneyDefinitionModel.code == code)
        stmt = stmt.order_by(
            JourneyDefinitionModel.code, JourneyDefinitionModel.created_at,
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def get_graph(self, tenant_id: str, code: str, version: str) -> JourneyGraph:
        """Indexed graph of one pinned version, cached process-wide."""
        key = (tenant_id, code, version)
        graph = self._graphs.get(key)
        if graph is not None:
            return graph

        model = self._load(tenant_id, code, version)
        if model is None:
            raise DefinitionNotFoundError(tenant_id, code, version)

        graph = self._graphs.put(JourneyGraph.build(model.to_dto()))
        logger.debug(
            "journey_graph_cached",
            extra={"tenant_id": tenant_id, "journey_code": code, "journey_version": version},
        )
        return graph

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, tenant_id: str, code: str, version: str) -> JourneyDefinitionModel | None:
        return self.session.execute(
            select(JourneyDefinitionModel).where(
                JourneyDefinitionModel.tenant_id == tenant_id,
                JourneyDefinitionModel.code == code,
                JourneyDefinitionModel.version == version,
            )
        ).scalar_one_or_none()

    def _lock_versions(self, tenant_id: str, code: str) -> list[JourneyDefinitionModel]:
        return list(
            self.session.execute(
                select(JourneyDefinitionModel)
                .where(
                    JourneyDefinitionModel.tenant_id == tenant_id,
                    JourneyDefinitionModel.code == code,
                )
                .order_by(JourneyDefinitionModel.created_at)
                .with_for_update()
            ).scalars()
        )
