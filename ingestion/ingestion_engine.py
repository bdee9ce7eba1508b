"""
Ingestion Engine for type-mapped graph updates

For every incoming payload the engine:

1. Computes the payload's shape hash
2. Finds the data source's type mapping for that shape, creating an inactive one on first sight
3. Stages the raw payload
4. If the mapping is active, applies its transformations and writes nodes, then edges, to the graph
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from ontograph.base import GraphStore
from ontograph.errors import OntographError, PartialFailure, ValidationError
from ontograph.models import Edge, Node

from .mappers import DataSourceMapper, DataStagingMapper
from .models import DataSource, DataStaging, TypeMapping
from .repository import TypeMappingRepository
from .shape import shape_hash
from .transformations import PendingEdge, TransformationApplier


@dataclass
class IngestReport:
    data_source_id: str
    import_id: str
    staged: int = 0
    awaiting_mapping: int = 0
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    failures: List[PartialFailure] = field(default_factory=list)


class IngestionEngine:
    """Engine for staging payloads and promoting them to the graph."""

    def __init__(self, store: GraphStore, type_mappings: TypeMappingRepository,
                 data_sources: Optional[DataSourceMapper] = None, staging: Optional[DataStagingMapper] = None):
        self.store = store
        self.type_mappings = type_mappings
        self.data_sources = data_sources or type_mappings.data_source_mapper
        self.staging = staging or DataStagingMapper()
        self.applier = TransformationApplier(store.ontology)
        self.logger = logging.getLogger("IngestionEngine")

    async def create_data_source(self, container_id: str, name: str, user_id: str,
                                 adapter_type: str = 'standard') -> DataSource:
        source = DataSource(container_id=container_id, name=name, adapter_type=adapter_type)
        errors = source.validation_errors()
        if errors:
            raise ValidationError(f"data source does not pass validation {','.join(errors)}", errors)
        self.logger.debug(f"Creating DataSource '{name}'.")
        return await self.data_sources.create(user_id, source)

    async def ingest(self, data_source_id: str, payloads: Iterable[Any], import_id: Optional[str] = None,
                     user_id: str = 'system') -> IngestReport:
        """Stage and, where a mapping is active, promote each payload.

        A failing payload is recorded in the report and does not stop the rest.
        """
        data_source = await self.data_sources.retrieve(data_source_id)
        if not data_source.active:
            raise ValidationError(f"data source {data_source_id} is not active")

        report = IngestReport(data_source_id=data_source_id, import_id=import_id or str(uuid.uuid4()))
        for payload in payloads:
            staged = None
            try:
                payload_hash = shape_hash(payload)
                mapping = await self.type_mappings.find_or_create(data_source, payload_hash, payload, user_id)
                staged = await self.staging.create(DataStaging(
                    data_source_id=data_source.id, data=payload, shape_hash=payload_hash,
                    import_id=report.import_id, mapping_id=mapping.id))
                report.staged += 1

                if not mapping.active:
                    report.awaiting_mapping += 1
                    continue
                await self._promote(mapping, payload, report, user_id)
            except OntographError as e:
                self.logger.error(f"Unable to ingest payload into data source {data_source_id}: {str(e)}")
                if staged is not None:
                    await self.staging.set_errors(staged.id, [str(e)])
                report.failures.append(PartialFailure(payload, e))

        self.logger.info(f"Import {report.import_id}: staged {report.staged}, created {len(report.nodes)} nodes "
                         f"and {len(report.edges)} edges, {len(report.failures)} failures")
        return report

    async def _promote(self, mapping: TypeMapping, payload: Any, report: IngestReport, user_id: str):
        nodes: List[Node] = []
        pending: List[PendingEdge] = []
        for transformation in mapping.transformations:
            if transformation.archived:
                continue
            produced_nodes, produced_edges = await self.applier.apply(mapping, transformation, payload,
                                                                      report.import_id)
            nodes.extend(produced_nodes)
            pending.extend(produced_edges)

        if nodes:
            report.nodes.extend(await self.store.create_or_update_nodes(nodes, user_id))
        if pending:
            edges = [await self._resolve_endpoints(mapping, p) for p in pending]
            report.edges.extend(await self.store.create_or_update_edges(edges, user_id))

    async def _resolve_endpoints(self, mapping: TypeMapping, pending: PendingEdge) -> Edge:
        if pending.origin_original_id is None or pending.destination_original_id is None:
            raise ValidationError("edge payload is missing its origin or destination id")
        origin = await self.store.retrieve_node_by_original_id(pending.origin_original_id, mapping.data_source_id)
        destination = await self.store.retrieve_node_by_original_id(pending.destination_original_id,
                                                                    mapping.data_source_id)
        pending.edge.origin_id = origin.id
        pending.edge.destination_id = destination.id
        return pending.edge
