"""Engine components: items, storage, import, conflicts, dedup, enrichment."""

from .analyzer import AnalysisResult, ContentAnalyzer, GeminiAnalyzer
from .conflicts import ConflictAction, ConflictPair, ConflictQueue, ImportPlan, plan_import
from .dedup import DeduplicationEngine, DuplicateGroup, RetentionPolicy, find_duplicate_groups
from .enrichment import EnrichmentPipeline, EnrichmentReport, WorkQueue, resolve_credentials
from .importer import ImportParser, derive_category
from .items import ItemType, VaultItem
from .storage import StorageGateway

__all__ = [
    "AnalysisResult",
    "ConflictAction",
    "ConflictPair",
    "ConflictQueue",
    "ContentAnalyzer",
    "DeduplicationEngine",
    "DuplicateGroup",
    "EnrichmentPipeline",
    "EnrichmentReport",
    "GeminiAnalyzer",
    "ImportParser",
    "ImportPlan",
    "ItemType",
    "RetentionPolicy",
    "StorageGateway",
    "VaultItem",
    "WorkQueue",
    "derive_category",
    "find_duplicate_groups",
    "plan_import",
    "resolve_credentials",
]
