"""Graph neighborhood traversal and shortest-path explanation."""

from typing import Any, Dict, List, Optional, Sequence

from factgraph.core.exceptions import UpstreamError
from factgraph.core.neo4j_client import Neo4jClient
from factgraph.schemas.retrieval import GraphEdge, GraphNode, GraphResult
from factgraph.services.graph.constants import (
    ALLOWED_EDGE_TYPES,
    EXPLAIN_PATH_QUERY_TEMPLATE,
    TRAVERSE_QUERY_TEMPLATE,
)
from factgraph.utils.identifiers import clamp_int
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


def sanitize_edge_types(edge_types: Optional[Sequence[str]]) -> List[str]:
    """Keep allowed types in the given order; empty or all-invalid means all allowed types."""
    out = [t for t in (edge_types or []) if t in ALLOWED_EDGE_TYPES]
    return out or list(ALLOWED_EDGE_TYPES)


def node_id(properties: Dict[str, Any]) -> str:
    value = properties.get("entityId") or properties.get("documentId") or properties.get("chunkId")
    return str(value) if value is not None else ""


class GraphAccumulator:
    """Collects nodes and edges from path segments, first occurrence wins."""

    def __init__(self, dedupe_edges: bool = True):
        self.dedupe_edges = dedupe_edges
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: List[GraphEdge] = []
        self._edge_keys: set = set()

    def add_segments(self, segments: Sequence[Dict[str, Any]]) -> None:
        for seg in segments or []:
            start, end = seg.get("start") or {}, seg.get("end") or {}
            start_props, end_props = start.get("properties") or {}, end.get("properties") or {}
            start_id, end_id = node_id(start_props), node_id(end_props)
            if not start_id or not end_id:
                continue

            for nid, node in ((start_id, start), (end_id, end)):
                if nid not in self.nodes:
                    self.nodes[nid] = GraphNode(
                        id=nid,
                        labels=list(node.get("labels") or []),
                        properties=dict(node.get("properties") or {}),
                    )

            props = dict(seg.get("properties") or {})
            rel_type = seg.get("type") or ""
            if self.dedupe_edges:
                key = f"{rel_type}:{props.get('assertionId', '')}:{start_id}->{end_id}"
                if key in self._edge_keys:
                    continue
                self._edge_keys.add(key)

            self.edges.append(
                GraphEdge(type=rel_type, from_id=start_id, to_id=end_id, properties=props)
            )

    def result(self) -> GraphResult:
        return GraphResult(nodes=list(self.nodes.values()), edges=self.edges)


class GraphRetrievalService:
    """Read-only queries over the projected graph."""

    def __init__(self, neo4j_client: Neo4jClient):
        self.neo4j_client = neo4j_client

    async def _run(self, query: str, parameters: Dict[str, Any], operation: str) -> List[Dict[str, Any]]:
        try:
            return await self.neo4j_client.run_query(query, parameters)
        except Exception as e:
            LOGGER.error(f"Graph {operation} failed", exc_info=True, extra={"parameters": parameters})
            raise UpstreamError(f"Graph {operation} failed: {e}", original_error=e) from e

    async def traverse(
        self,
        seed_entity_ids: Sequence[str],
        edge_types: Optional[Sequence[str]] = None,
        depth: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> GraphResult:
        """Neighborhood of the seeds, following allowed edge types in either direction.

        `limit` caps the number of paths, not nodes.
        """
        seeds = [s.strip() for s in seed_entity_ids or [] if s and s.strip()]
        if not seeds:
            return GraphResult()

        types = sanitize_edge_types(edge_types)
        bounded_depth = clamp_int(depth, 2, 1, 3)
        bounded_limit = clamp_int(limit, 25, 1, 200)

        query = TRAVERSE_QUERY_TEMPLATE.format(edge_union="|".join(types), depth=bounded_depth)
        records = await self._run(query, {"seeds": seeds, "limit": bounded_limit}, "traverse")

        acc = GraphAccumulator(dedupe_edges=True)
        for record in records:
            acc.add_segments(record.get("segments") or [])

        LOGGER.debug(
            "Graph traversal completed",
            extra={"seeds": seeds, "paths": len(records), "nodes": len(acc.nodes), "edges": len(acc.edges)}
        )
        return acc.result()

    async def explain_path(
        self,
        from_entity_id: str,
        to_entity_id: str,
        edge_types: Optional[Sequence[str]] = None,
        max_hops: Optional[int] = None,
    ) -> GraphResult:
        """One shortest path between two entities, edges in path order.

        An empty result means no path within max_hops.
        """
        source = (from_entity_id or "").strip()
        target = (to_entity_id or "").strip()
        if not source or not target:
            return GraphResult()

        types = sanitize_edge_types(edge_types)
        hops = clamp_int(max_hops, 4, 1, 6)

        query = EXPLAIN_PATH_QUERY_TEMPLATE.format(edge_union="|".join(types), max_hops=hops)
        records = await self._run(query, {"from": source, "to": target}, "explain_path")
        if not records:
            return GraphResult()

        acc = GraphAccumulator(dedupe_edges=False)
        acc.add_segments(records[0].get("segments") or [])
        return acc.result()
