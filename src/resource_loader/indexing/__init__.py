"""Resource indexing: metadata extraction, index builder, reference graph."""

from resource_loader.indexing.builder import (
    add_resource_to_index,
    build_resource_index,
    get_resource_paths,
    index_agent_command_references,
    scan_resource_type,
    validate_index,
)
from resource_loader.indexing.extractor import extract_resource_metadata
from resource_loader.indexing.frontmatter import parse_frontmatter
from resource_loader.indexing.graph import build_reference_graph, collect_reference_closure

__all__ = [
    "add_resource_to_index",
    "build_reference_graph",
    "build_resource_index",
    "collect_reference_closure",
    "extract_resource_metadata",
    "get_resource_paths",
    "index_agent_command_references",
    "parse_frontmatter",
    "scan_resource_type",
    "validate_index",
]
