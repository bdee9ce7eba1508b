"""
Ingestion: data sources, payload shapes and type mappings.
"""
from .ingestion_engine import IngestionEngine, IngestReport
from .models import Condition, DataSource, DataStaging, KeyMapping, TypeMapping, TypeTransformation
from .repository import TypeMappingRepository
from .shape import shape_hash
from .transformations import TypeTransformationRepository

__all__ = [
    'IngestionEngine',
    'IngestReport',
    'Condition',
    'DataSource',
    'DataStaging',
    'KeyMapping',
    'TypeMapping',
    'TypeTransformation',
    'TypeMappingRepository',
    'TypeTransformationRepository',
    'shape_hash',
]
