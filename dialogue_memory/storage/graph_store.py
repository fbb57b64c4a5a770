"""Kuzu persistence for the concept graph.

Stores Concept nodes and LINKS edges. Traversal never runs against Kuzu: the
stored graph is read once by ``load_graph`` into an in-memory ConceptGraph.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import kuzu

from dialogue_memory.config import GRAPH_DIR
from dialogue_memory.knowledge.concept_graph import ConceptGraph
from dialogue_memory.models import ConceptEdge, ConceptNode

logger = logging.getLogger(__name__)


class GraphStore:
    """Kuzu-backed store of concept nodes and their edges."""

    def __init__(self, graph_dir: Path | None = None) -> None:
        self.graph_dir = graph_dir or GRAPH_DIR
        self._db: kuzu.Database | None = None
        self._conn: kuzu.Connection | None = None

    def initialize(self) -> None:
        # Kuzu creates the database directory itself; only ensure the parent exists
        self.graph_dir.parent.mkdir(parents=True, exist_ok=True)
        self._db = kuzu.Database(str(self.graph_dir))
        self._conn = kuzu.Connection(self._db)
        self._create_schema()

    def close(self) -> None:
        self._conn = None
        self._db = None

    @property
    def conn(self) -> kuzu.Connection:
        assert self._conn is not None, "GraphStore not initialized, call initialize() first"
        return self._conn

    def _create_schema(self) -> None:
        stmts = [
            """CREATE NODE TABLE IF NOT EXISTS Concept (
                id STRING,
                name STRING,
                kind STRING,
                domain STRING,
                description STRING,
                synonyms STRING,
                metadata STRING,
                PRIMARY KEY (id)
            )""",
            """CREATE REL TABLE IF NOT EXISTS LINKS (
                FROM Concept TO Concept,
                kind STRING,
                direction STRING,
                strength DOUBLE,
                confidence DOUBLE,
                metadata STRING
            )""",
        ]
        for stmt in stmts:
            try:
                self.conn.execute(stmt)
            except Exception as e:
                logger.debug("Schema statement skipped: %s", e)

    # ── Writes ──

    def save_node(self, node: ConceptNode) -> None:
        self.conn.execute(
            "MERGE (c:Concept {id: $id}) SET c.name = $name, c.kind = $kind, "
            "c.domain = $domain, c.description = $description, "
            "c.synonyms = $synonyms, c.metadata = $metadata",
            {
                "id": node.id, "name": node.label, "kind": node.type,
                "domain": node.domain, "description": node.description or "",
                "synonyms": json.dumps(node.synonyms),
                "metadata": json.dumps(node.metadata),
            },
        )

    def save_edge(self, edge: ConceptEdge) -> None:
        self.conn.execute(
            "MATCH (a:Concept {id: $src}), (b:Concept {id: $dst}) "
            "CREATE (a)-[:LINKS {kind: $kind, direction: $direction, strength: $strength, "
            "confidence: $confidence, metadata: $metadata}]->(b)",
            {
                "src": edge.source_id, "dst": edge.target_id, "kind": edge.type,
                "direction": edge.direction, "strength": float(edge.strength),
                "confidence": float(edge.confidence), "metadata": json.dumps(edge.metadata),
            },
        )

    def clear(self) -> None:
        self.conn.execute("MATCH (c:Concept) DETACH DELETE c")

    def save_graph(self, graph: ConceptGraph) -> None:
        """Replace the stored graph with ``graph``."""
        self.clear()
        for node in graph.nodes():
            self.save_node(node)
        for edge in graph.edges():
            self.save_edge(edge)
        logger.info("Saved concept graph: %d nodes, %d edges", len(graph), len(graph.edges()))

    # ── Reads ──

    def load_graph(self) -> ConceptGraph:
        nodes = []
        result = self.conn.execute(
            "MATCH (c:Concept) RETURN c.id, c.name, c.kind, c.domain, "
            "c.description, c.synonyms, c.metadata ORDER BY c.id"
        )
        while result.has_next():
            row = result.get_next()
            nodes.append(ConceptNode(
                id=row[0], label=row[1] or "", type=row[2] or "", domain=row[3] or "",
                description=row[4] or "",
                synonyms=json.loads(row[5] or "[]"),
                metadata=json.loads(row[6] or "{}"),
            ))

        edges = []
        result = self.conn.execute(
            "MATCH (a:Concept)-[r:LINKS]->(b:Concept) RETURN a.id, b.id, r.kind, "
            "r.direction, r.strength, r.confidence, r.metadata"
        )
        while result.has_next():
            row = result.get_next()
            edges.append(ConceptEdge(
                source_id=row[0], target_id=row[1], type=row[2] or "",
                direction=row[3] or "forward", strength=row[4] or 0.0,
                confidence=row[5] or 0.0, metadata=json.loads(row[6] or "{}"),
            ))
        return ConceptGraph.from_parts(nodes, edges)

    def node_count(self) -> int:
        result = self.conn.execute("MATCH (c:Concept) RETURN count(c)")
        if result.has_next():
            return result.get_next()[0]
        return 0
